"""Zip export of a published artifact."""

from __future__ import annotations

import io
import zipfile

from vibecode.integrations.storage import ArtifactStorage


def build_archive(storage: ArtifactStorage, deploy_key: str) -> bytes:
    """Return the deploy tree as an in-memory zip, entries rooted at ``<deploy_key>/``."""
    files = storage.list_files(deploy_key)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for relative in files:
            zf.write(storage.resolve(deploy_key, relative), arcname=f"{deploy_key}/{relative}")
    return buffer.getvalue()
