"""Route a generation turn to the right strategy for its type.

``HTML`` and ``MULTI_FILE`` await one structured model response which is
parsed, validated and saved before returning.  ``VUE_PROJECT``, ``CHAT`` and
``AGENT`` return a ``StreamHandle`` immediately; nothing is sent to the model
until the caller starts iterating it.

Only one generation per app may be in flight.  A second request for the
same app is rejected with ``GenerationInProgress``; requests are not queued.

A turn is written to the conversation store once, after the model response
has completed.  Failed or cancelled turns leave the history untouched so
the whole turn can be retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import aclosing

from pydantic import BaseModel

from vibecode.common.enums import GenerationType, MessageRole
from vibecode.common.exceptions import GenerationFailed, GenerationInProgress, StoreUnavailable, ValidationFailed
from vibecode.common.logging import get_logger
from vibecode.common.metrics import GENERATIONS, STORE_DEGRADATIONS
from vibecode.core.artifacts.saver import ArtifactSaver, mint_deploy_key
from vibecode.core.artifacts.schemas import Artifact, ProjectArtifact
from vibecode.core.conversation.schemas import ConversationEntry
from vibecode.core.conversation.store import ConversationStore
from vibecode.core.generation.parsing import parse_structured_output
from vibecode.core.generation.prompts import PROJECT_TOOLS, system_prompt_for
from vibecode.core.streaming.aggregator import StreamAggregator
from vibecode.core.streaming.events import StreamEvent
from vibecode.integrations.ai_client import AIClient
from vibecode.integrations.storage import ArtifactStorage

logger = get_logger("generation.dispatcher")


def preview_url(deploy_key: str) -> str:
    return f"/static/{deploy_key}/"


class GenerationResult(BaseModel):
    app_id: int
    type: GenerationType
    deploy_key: str
    preview_url: str
    files: list[str]
    artifact: Artifact


class AppGenerationLocks:
    """In-process registry of apps with a generation in flight."""

    def __init__(self) -> None:
        self._active: set[int] = set()

    def acquire(self, app_id: int) -> None:
        if app_id in self._active:
            raise GenerationInProgress(app_id)
        self._active.add(app_id)

    def release(self, app_id: int) -> None:
        self._active.discard(app_id)

    def is_active(self, app_id: int) -> bool:
        return app_id in self._active


class StreamHandle:
    """A lazy, finite, single-use sequence of stream events for one turn.

    The final event is ``done``; its payload carries ``deploy_key`` and
    ``files`` for project generations.  Closing the handle before the end
    cancels the turn and triggers the aggregator's cleanup.
    """

    def __init__(
        self,
        app_id: int,
        generation_type: GenerationType,
        events: AsyncGenerator[StreamEvent, None],
        release: Callable[[], None],
        deploy_key: str | None = None,
    ) -> None:
        self.app_id = app_id
        self.generation_type = generation_type
        self.deploy_key = deploy_key
        self._events = events
        self._release = release
        self._iterator: AsyncGenerator[StreamEvent, None] | None = None
        self._finished = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._iterator is not None:
            raise RuntimeError("stream handle can only be iterated once")
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncGenerator[StreamEvent, None]:
        try:
            async with aclosing(self._events) as events:
                async for event in events:
                    yield event
        finally:
            self._finish()

    async def aclose(self) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._events.aclose()
        self._finish()

    @property
    def finished(self) -> bool:
        return self._finished

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._release()


class GenerationDispatcher:
    def __init__(
        self,
        ai_client: AIClient,
        conversations: ConversationStore,
        saver: ArtifactSaver,
        storage: ArtifactStorage,
        locks: AppGenerationLocks | None = None,
        timeout_seconds: float | None = None,
        augment_html: bool = False,
    ) -> None:
        self._ai = ai_client
        self._conversations = conversations
        self._saver = saver
        self._storage = storage
        self._locks = locks or AppGenerationLocks()
        self._timeout = timeout_seconds
        self._augment_html = augment_html

    @property
    def locks(self) -> AppGenerationLocks:
        return self._locks

    async def generate(
        self,
        app_id: int,
        user_message: str,
        generation_type: GenerationType | str,
    ) -> GenerationResult | StreamHandle:
        generation_type = self._coerce_type(generation_type)
        if not user_message or not user_message.strip():
            raise ValidationFailed("Message must not be empty")

        try:
            self._locks.acquire(app_id)
        except GenerationInProgress:
            GENERATIONS.labels(type=generation_type.value, outcome="rejected").inc()
            logger.warning("Rejected concurrent generation | app_id=%s", app_id)
            raise

        if generation_type.is_streaming:
            try:
                return await self._open_stream(app_id, user_message, generation_type)
            except BaseException:
                self._locks.release(app_id)
                raise

        try:
            return await self._generate_structured(app_id, user_message, generation_type)
        finally:
            self._locks.release(app_id)

    @staticmethod
    def _coerce_type(generation_type: GenerationType | str) -> GenerationType:
        try:
            return GenerationType(generation_type)
        except ValueError:
            raise ValidationFailed(f"Unknown generation type: {generation_type!r}") from None

    @staticmethod
    def _build_messages(history: list[ConversationEntry], user_message: str) -> list[dict[str, str]]:
        return [*(entry.to_model_message() for entry in history), {"role": "user", "content": user_message}]

    # ------------------------------------------------------------------
    # Structured path
    # ------------------------------------------------------------------

    async def _generate_structured(
        self,
        app_id: int,
        user_message: str,
        generation_type: GenerationType,
    ) -> GenerationResult:
        history = await self._conversations.load(app_id)
        messages = self._build_messages(history, user_message)
        logger.info("Dispatching %s generation | app_id=%s | history=%d", generation_type.value, app_id, len(history))

        try:
            raw = await asyncio.wait_for(
                self._ai.complete(generation_type, system_prompt_for(generation_type), messages),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            GENERATIONS.labels(type=generation_type.value, outcome="failed").inc()
            logger.error("Model call timed out | app_id=%s", app_id)
            raise GenerationFailed("model call timed out") from None
        except GenerationFailed:
            GENERATIONS.labels(type=generation_type.value, outcome="failed").inc()
            raise

        try:
            artifact = parse_structured_output(generation_type, raw)
            deploy_key = self._saver.save(artifact, generation_type, app_id)
        except Exception:
            GENERATIONS.labels(type=generation_type.value, outcome="failed").inc()
            raise

        await self._record_turn(app_id, history, user_message, raw)
        GENERATIONS.labels(type=generation_type.value, outcome="success").inc()
        return GenerationResult(
            app_id=app_id,
            type=generation_type,
            deploy_key=deploy_key,
            preview_url=preview_url(deploy_key),
            files=self._storage.list_files(deploy_key),
            artifact=artifact,
        )

    # ------------------------------------------------------------------
    # Streaming path
    # ------------------------------------------------------------------

    async def _open_stream(
        self,
        app_id: int,
        user_message: str,
        generation_type: GenerationType,
    ) -> StreamHandle:
        history = await self._conversations.load(app_id)
        messages = self._build_messages(history, user_message)
        tools = PROJECT_TOOLS if generation_type.materializes_files else None
        source = self._ai.stream(generation_type, system_prompt_for(generation_type), messages, tools=tools)

        deploy_key = None
        aggregator = StreamAggregator()
        if generation_type.materializes_files:
            deploy_key = mint_deploy_key(app_id, generation_type)
            aggregator = StreamAggregator(self._storage, deploy_key, augment_html=self._augment_html)

        logger.info(
            "Opening %s stream | app_id=%s | history=%d | key=%s",
            generation_type.value,
            app_id,
            len(history),
            deploy_key,
        )
        events = self._run_stream(app_id, generation_type, history, user_message, source, aggregator)
        return StreamHandle(
            app_id,
            generation_type,
            events,
            release=lambda: self._locks.release(app_id),
            deploy_key=deploy_key,
        )

    async def _run_stream(
        self,
        app_id: int,
        generation_type: GenerationType,
        history: list[ConversationEntry],
        user_message: str,
        source: AsyncGenerator[StreamEvent, None],
        aggregator: StreamAggregator,
    ) -> AsyncGenerator[StreamEvent, None]:
        completed = False
        cancelled = False
        try:
            async with aclosing(source) as events:
                if generation_type.materializes_files:
                    async with aclosing(aggregator.materialize(events)) as applied:
                        async for event in applied:
                            yield event
                else:
                    async with aclosing(aggregator.passthrough(events)) as texts:
                        async for text in texts:
                            yield StreamEvent.text_chunk(text)

            summary: ProjectArtifact | None = aggregator.summary
            assistant_message = aggregator.text
            if summary is not None:
                written = "\n".join(f"- {path}" for path in summary.files)
                assistant_message = f"{assistant_message}\n\nFiles written:\n{written}".strip()
            await self._record_turn(app_id, history, user_message, assistant_message)
            completed = True

            payload = {"files": summary.files, "deploy_key": summary.deploy_key} if summary else {}
            yield StreamEvent.done(**payload)
        except (GeneratorExit, asyncio.CancelledError):
            cancelled = True
            raise
        finally:
            outcome = "success" if completed else ("cancelled" if cancelled else "failed")
            GENERATIONS.labels(type=generation_type.value, outcome=outcome).inc()
            logger.info("Stream finished | app_id=%s | type=%s | outcome=%s", app_id, generation_type.value, outcome)

    # ------------------------------------------------------------------
    # Conversation memory
    # ------------------------------------------------------------------

    async def _record_turn(
        self,
        app_id: int,
        history: list[ConversationEntry],
        user_message: str,
        assistant_message: str,
    ) -> None:
        entries = [
            *history,
            ConversationEntry(role=MessageRole.USER, content=user_message),
            ConversationEntry(role=MessageRole.ASSISTANT, content=assistant_message),
        ]
        try:
            await self._conversations.replace(app_id, entries)
        except StoreUnavailable:
            STORE_DEGRADATIONS.labels(operation="replace").inc()
            logger.warning("Turn not persisted, conversation store unavailable | app_id=%s", app_id)
