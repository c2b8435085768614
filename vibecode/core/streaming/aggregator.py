"""Fold a model event stream into text or into files on disk.

Two consumption modes are offered:

* ``passthrough`` forwards text chunks unchanged (chat and agent replies).
* ``materialize`` writes file events into a staging directory for the
  active deploy key and publishes it when the stream reports ``done``.

In materializing mode the aggregator owns cleanup on every exit path.  An
``error`` event, a protocol violation, an unsafe path or the consumer
abandoning the iteration (client disconnect, task cancellation) discards
the whole staging directory, so the deploy key never resolves to a
partially written tree.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from contextlib import ExitStack
from typing import BinaryIO

from vibecode.common.enums import StreamEventType
from vibecode.common.exceptions import GenerationFailed, IOFailure
from vibecode.common.logging import get_logger
from vibecode.core.artifacts.paths import FileLayout, normalize_relative_path
from vibecode.core.artifacts.schemas import ProjectArtifact
from vibecode.core.preview.receiver import inject_receiver_script
from vibecode.core.streaming.events import StreamEvent
from vibecode.integrations.storage import ArtifactStorage, StagingArea

logger = get_logger("streaming.aggregator")


class StreamAggregator:
    def __init__(
        self,
        storage: ArtifactStorage | None = None,
        deploy_key: str | None = None,
        augment_html: bool = False,
    ) -> None:
        self._storage = storage
        self._deploy_key = deploy_key
        self._augment_html = augment_html
        self._text: list[str] = []
        self.written: list[str] = []
        self.summary: ProjectArtifact | None = None

    @property
    def text(self) -> str:
        return "".join(self._text)

    # ------------------------------------------------------------------
    # Pass-through mode
    # ------------------------------------------------------------------

    async def passthrough(self, events: AsyncIterable[StreamEvent]) -> AsyncIterator[str]:
        async for event in events:
            if event.type == StreamEventType.TEXT_CHUNK:
                self._text.append(event.text)
                yield event.text
            elif event.type == StreamEventType.ERROR:
                raise GenerationFailed(event.text or "model stream error", partial_output=self.text)
            elif event.type == StreamEventType.DONE:
                return
            else:
                logger.debug("Ignoring %s event in pass-through mode", event.type.value)
        raise GenerationFailed("model stream ended without completion", partial_output=self.text)

    # ------------------------------------------------------------------
    # Materializing mode
    # ------------------------------------------------------------------

    async def materialize(self, events: AsyncIterable[StreamEvent]) -> AsyncIterator[StreamEvent]:
        """Write file events to disk, yielding each event once it has been applied.

        On ``done`` the staged tree is published and ``self.summary`` is set;
        the ``done`` event itself is not re-yielded.
        """
        if self._storage is None or not self._deploy_key:
            raise RuntimeError("materializing mode needs storage and a deploy key")

        staging = self._storage.begin(self._deploy_key)
        open_files: dict[str, BinaryIO] = {}
        layout = FileLayout()
        try:
            with ExitStack() as handles:
                completed = False
                async for event in events:
                    if event.type == StreamEventType.FILE_BEGIN:
                        path = normalize_relative_path(event.path)
                        if path in open_files:
                            raise GenerationFailed(f"file '{path}' opened twice", partial_output=self.text)
                        try:
                            layout.add(path)
                        except ValueError as e:
                            raise GenerationFailed(str(e), partial_output=self.text) from None
                        open_files[path] = handles.enter_context(staging.open_file(path))
                    elif event.type == StreamEventType.FILE_CHUNK:
                        self._write(open_files, event)
                    elif event.type == StreamEventType.FILE_END:
                        self._close(open_files, staging, event)
                    elif event.type == StreamEventType.TEXT_CHUNK:
                        self._text.append(event.text)
                    elif event.type == StreamEventType.ERROR:
                        raise GenerationFailed(event.text or "model stream error", partial_output=self.text)
                    elif event.type == StreamEventType.DONE:
                        completed = True
                        break
                    yield event

                if not completed:
                    raise GenerationFailed("model stream ended without completion", partial_output=self.text)
                if open_files:
                    raise GenerationFailed(
                        f"stream completed with unterminated files: {', '.join(sorted(open_files))}",
                        partial_output=self.text,
                    )
            staging.commit()
        finally:
            if not staging.committed:
                # Open handles are already closed by the ExitStack.
                staging.discard()
                logger.warning(
                    "Stream aborted, discarded %d finished and %d open files | key=%s",
                    len(self.written),
                    len(open_files),
                    self._deploy_key,
                )

        self.summary = ProjectArtifact(deploy_key=self._deploy_key, files=list(self.written))
        logger.info("Stream materialized %d files | key=%s", len(self.written), self._deploy_key)

    def _write(self, open_files: dict[str, BinaryIO], event: StreamEvent) -> None:
        path = normalize_relative_path(event.path)
        handle = open_files.get(path)
        if handle is None:
            raise GenerationFailed(f"chunk for file '{path}' outside begin/end", partial_output=self.text)
        try:
            handle.write(event.data)
        except OSError as e:
            logger.error("Chunk write failed | key=%s | path=%s | %s", self._deploy_key, path, e)
            raise IOFailure() from e

    def _close(self, open_files: dict[str, BinaryIO], staging: StagingArea, event: StreamEvent) -> None:
        path = normalize_relative_path(event.path)
        handle = open_files.pop(path, None)
        if handle is None:
            raise GenerationFailed(f"end for file '{path}' that was never opened", partial_output=self.text)
        handle.close()
        if self._augment_html and path.lower().endswith(".html"):
            target = staging.path / path
            try:
                html = target.read_bytes().decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("HTML is not valid UTF-8, saved unmodified | key=%s | path=%s", self._deploy_key, path)
            else:
                target.write_text(inject_receiver_script(html), encoding="utf-8")
        if path in self.written:
            self.written.remove(path)
        self.written.append(path)
