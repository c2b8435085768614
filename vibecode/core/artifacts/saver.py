"""Validate structured artifacts and publish them under a fresh deploy key.

Each generation type maps to a ``SaveStrategy``: a ``validate`` function
that rejects bad shapes before anything touches the disk, and a
``materialize`` function that turns the artifact into ``(path, content)``
pairs.  The saver composes the two with staged publication, so a failed
save never leaves a visible deploy directory behind.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from vibecode.common.enums import GenerationType
from vibecode.common.exceptions import PathTraversal, ValidationFailed
from vibecode.common.logging import get_logger
from vibecode.core.artifacts.paths import FileLayout, normalize_relative_path
from vibecode.core.artifacts.schemas import HtmlArtifact, MultiFileArtifact
from vibecode.core.preview.receiver import inject_receiver_script
from vibecode.integrations.storage import ArtifactStorage

logger = get_logger("artifacts.saver")

FileList = list[tuple[str, str]]


def mint_deploy_key(app_id: int, generation_type: GenerationType) -> str:
    """``<type>_<app_id>_<ms timestamp base36><random hex>``; URL safe and unique per save."""
    stamp = _base36(int(time.time() * 1000))
    return f"{generation_type.value}_{app_id}_{stamp}{secrets.token_hex(4)}"


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _validate_html(artifact: HtmlArtifact) -> None:
    if not isinstance(artifact, HtmlArtifact):
        raise ValidationFailed("Expected an HTML artifact")
    if not artifact.html_code or not artifact.html_code.strip():
        raise ValidationFailed("HTML code must not be empty")


def _materialize_html(artifact: HtmlArtifact) -> FileList:
    return [("index.html", artifact.html_code)]


def _validate_multi_file(artifact: MultiFileArtifact) -> None:
    if not isinstance(artifact, MultiFileArtifact):
        raise ValidationFailed("Expected a multi-file artifact")
    if not artifact.files:
        raise ValidationFailed("Multi-file artifact must contain at least one file")
    layout = FileLayout()
    for item in artifact.files:
        if not item.path or not item.path.strip():
            raise ValidationFailed("File path must not be empty")
        clean = normalize_relative_path(item.path)
        if clean in layout.files:
            raise ValidationFailed(f"Duplicate file path: {clean}")
        try:
            layout.add(clean)
        except ValueError as e:
            raise ValidationFailed(str(e)) from None


def _materialize_multi_file(artifact: MultiFileArtifact) -> FileList:
    return [(normalize_relative_path(f.path), f.content) for f in artifact.files]


@dataclass(frozen=True)
class SaveStrategy:
    validate: Callable[..., None]
    materialize: Callable[..., FileList]


SAVE_STRATEGIES: dict[GenerationType, SaveStrategy] = {
    GenerationType.HTML: SaveStrategy(_validate_html, _materialize_html),
    GenerationType.MULTI_FILE: SaveStrategy(_validate_multi_file, _materialize_multi_file),
}


# ---------------------------------------------------------------------------
# Saver
# ---------------------------------------------------------------------------

class ArtifactSaver:
    def __init__(self, storage: ArtifactStorage, augment_html: bool = False) -> None:
        self._storage = storage
        self._augment_html = augment_html

    def validate(self, artifact, generation_type: GenerationType) -> FileList:
        strategy = SAVE_STRATEGIES.get(generation_type)
        if strategy is None:
            raise ValidationFailed(f"Generation type '{generation_type.value}' is not saved from a structured result")
        try:
            strategy.validate(artifact)
        except PathTraversal as e:
            logger.warning("Rejected artifact path | type=%s | %s", generation_type.value, e.path)
            raise
        return strategy.materialize(artifact)

    def save(self, artifact, generation_type: GenerationType, app_id: int) -> str:
        """Validate *artifact*, write it and return the new deploy key.

        Validation happens before any write.  Files are written into a
        staging directory that is renamed into place only when complete.
        """
        files = self.validate(artifact, generation_type)
        deploy_key = mint_deploy_key(app_id, generation_type)

        staging = self._storage.begin(deploy_key)
        try:
            for path, content in files:
                if self._augment_html and path.lower().endswith(".html"):
                    content = inject_receiver_script(content)
                staging.write_file(path, content)
            staging.commit()
        finally:
            staging.discard()

        logger.info(
            "Saved artifact | app_id=%s | type=%s | key=%s | files=%d",
            app_id,
            generation_type.value,
            deploy_key,
            len(files),
        )
        return deploy_key
