"""Resolve preview requests to files of a published artifact.

Only reads: HTML responses are augmented in memory and the file on disk is
never rewritten here.
"""

from __future__ import annotations

from dataclasses import dataclass

from vibecode.common.exceptions import NotFoundError, PathTraversal
from vibecode.common.logging import get_logger
from vibecode.core.artifacts.paths import is_valid_deploy_key
from vibecode.core.preview.receiver import inject_receiver_script
from vibecode.integrations.storage import ArtifactStorage

logger = get_logger("preview.service")

DEFAULT_DOCUMENT = "index.html"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html; charset=UTF-8",
    ".htm": "text/html; charset=UTF-8",
    ".css": "text/css; charset=UTF-8",
    ".js": "application/javascript; charset=UTF-8",
    ".mjs": "application/javascript; charset=UTF-8",
    ".json": "application/json; charset=UTF-8",
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
}


def content_type_for(path: str) -> str:
    name = path.rsplit("/", 1)[-1].lower()
    if "." not in name:
        return DEFAULT_CONTENT_TYPE
    return CONTENT_TYPES.get(name[name.rfind("."):], DEFAULT_CONTENT_TYPE)


@dataclass(frozen=True)
class PreviewFile:
    body: bytes
    content_type: str


class PreviewServer:
    def __init__(self, storage: ArtifactStorage) -> None:
        self._storage = storage

    @staticmethod
    def normalize_request_path(path: str) -> str:
        """Map the remainder after ``/static/<key>/`` to a file path.

        ``""`` and ``"/"`` become ``index.html``; a trailing slash selects
        the directory's ``index.html``.  Anything else is returned as is and
        validated by the storage layer.
        """
        if path in ("", "/"):
            return DEFAULT_DOCUMENT
        if path.endswith("/"):
            return path + DEFAULT_DOCUMENT
        return path

    def resolve(self, deploy_key: str, path: str) -> PreviewFile:
        if not is_valid_deploy_key(deploy_key):
            raise NotFoundError("Deploy", deploy_key)
        relative = self.normalize_request_path(path)
        try:
            target = self._storage.resolve(deploy_key, relative)
        except PathTraversal:
            logger.warning("Rejected preview path | key=%s | path=%r", deploy_key, path)
            raise NotFoundError("File") from None
        except (RuntimeError, OSError) as e:
            # Symlink loops surface as RuntimeError from Path.resolve
            logger.warning("Unresolvable preview path | key=%s | path=%r | %s", deploy_key, path, e)
            raise NotFoundError("File") from None

        content_type = content_type_for(relative)
        try:
            body = target.read_bytes()
        except OSError:
            # Missing file, a directory, or a deploy still being published.
            raise NotFoundError("File") from None

        if content_type.startswith("text/html"):
            body = self._augment(body, deploy_key, relative)
        return PreviewFile(body=body, content_type=content_type)

    def _augment(self, body: bytes, deploy_key: str, relative: str) -> bytes:
        try:
            html = body.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("HTML is not valid UTF-8, serving unmodified | key=%s | path=%s", deploy_key, relative)
            return body
        return inject_receiver_script(html).encode("utf-8")
