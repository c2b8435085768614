"""Local disk storage for generated artifacts.

Every artifact is written into a private staging directory under
``<root>/.staging`` and moved to ``<root>/<deploy_key>`` with a single
rename once all of its files are on disk.  Readers therefore only ever see
complete deploy directories.
"""

from __future__ import annotations

import os
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO

from vibecode.common.exceptions import IOFailure, NotFoundError
from vibecode.core.artifacts.paths import is_valid_deploy_key, normalize_relative_path, resolve_within
from vibecode.integrations.base import BaseIntegration

STAGING_DIR_NAME = ".staging"


class StagingArea:
    """A not-yet-visible deploy directory owned by exactly one writer."""

    def __init__(self, storage: ArtifactStorage, deploy_key: str, path: Path) -> None:
        self.storage = storage
        self.deploy_key = deploy_key
        self.path = path
        self.committed = False
        self.discarded = False

    def open_file(self, relative_path: str) -> BinaryIO:
        target = resolve_within(self.path, relative_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            return open(target, "wb")
        except OSError as e:
            self.storage.logger.error("Open failed | key=%s | path=%s | %s", self.deploy_key, relative_path, e)
            raise IOFailure() from e

    def write_file(self, relative_path: str, data: bytes | str) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        with self.open_file(relative_path) as fh:
            try:
                fh.write(payload)
            except OSError as e:
                self.storage.logger.error("Write failed | key=%s | path=%s | %s", self.deploy_key, relative_path, e)
                raise IOFailure() from e

    def commit(self) -> Path:
        """Atomically publish the staged tree as ``<root>/<deploy_key>``."""
        final = self.storage.deploy_path(self.deploy_key)
        if final.exists():
            raise IOFailure(f"Deploy key '{self.deploy_key}' already exists")
        try:
            os.rename(self.path, final)
        except OSError as e:
            self.storage.logger.error("Commit failed | key=%s | %s", self.deploy_key, e)
            self.discard()
            raise IOFailure() from e
        self.committed = True
        self.storage.logger.info("Artifact published | key=%s", self.deploy_key)
        return final

    def discard(self) -> None:
        if self.committed or self.discarded:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        self.discarded = True
        self.storage.logger.info("Staging discarded | key=%s", self.deploy_key)


class ArtifactStorage(BaseIntegration):
    """Filesystem layout ``<root>/<deploy_key>/...`` with staged publication."""

    def __init__(self, root: str | Path) -> None:
        super().__init__("storage")
        self.root = Path(root)

    @property
    def staging_root(self) -> Path:
        return self.root / STAGING_DIR_NAME

    async def health_check(self) -> bool:
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error("Storage health check failed: %s", e)
            return False
        return os.access(self.root, os.W_OK)

    def deploy_path(self, deploy_key: str) -> Path:
        if not is_valid_deploy_key(deploy_key):
            raise NotFoundError("Deploy", deploy_key)
        return self.root / deploy_key

    def exists(self, deploy_key: str) -> bool:
        return is_valid_deploy_key(deploy_key) and (self.root / deploy_key).is_dir()

    def begin(self, deploy_key: str) -> StagingArea:
        if not is_valid_deploy_key(deploy_key):
            raise IOFailure(f"Invalid deploy key '{deploy_key}'")
        path = self.staging_root / f"{deploy_key}-{uuid.uuid4().hex[:8]}"
        try:
            path.mkdir(parents=True)
        except OSError as e:
            self.logger.error("Staging create failed | key=%s | %s", deploy_key, e)
            raise IOFailure() from e
        return StagingArea(self, deploy_key, path)

    def resolve(self, deploy_key: str, relative_path: str) -> Path:
        return resolve_within(self.deploy_path(deploy_key), relative_path)

    def list_files(self, deploy_key: str) -> list[str]:
        base = self.deploy_path(deploy_key)
        if not base.is_dir():
            raise NotFoundError("Deploy", deploy_key)
        return sorted(
            normalize_relative_path(p.relative_to(base).as_posix())
            for p in base.rglob("*")
            if p.is_file()
        )

    def purge_stale_staging(self, max_age_seconds: int) -> int:
        """Delete staging directories older than *max_age_seconds*; returns the count removed."""
        if not self.staging_root.is_dir():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for entry in self.staging_root.iterdir():
            try:
                if entry.stat().st_mtime >= cutoff:
                    continue
            except FileNotFoundError:
                continue
            shutil.rmtree(entry, ignore_errors=True)
            removed += 1
            self.logger.info("Purged stale staging dir %s", entry.name)
        return removed
