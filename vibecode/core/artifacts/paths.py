"""Path safety helpers shared by the saver, the stream aggregator and the preview server."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

from vibecode.common.exceptions import PathTraversal

DEPLOY_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_deploy_key(deploy_key: str) -> bool:
    return bool(DEPLOY_KEY_PATTERN.match(deploy_key or ""))


def normalize_relative_path(path: str) -> str:
    """Return *path* as a clean POSIX relative path or raise ``PathTraversal``.

    Rejects empty paths, absolute paths (including Windows drive and UNC
    forms), NUL bytes and any ``..`` segment.  ``.`` segments and repeated
    separators are dropped.
    """
    if not path or "\x00" in path:
        raise PathTraversal(path)
    candidate = path.replace("\\", "/")
    if candidate.startswith("/") or re.match(r"^[A-Za-z]:", candidate):
        raise PathTraversal(path)
    parts = [p for p in PurePosixPath(candidate).parts if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        raise PathTraversal(path)
    return "/".join(parts)


def resolve_within(base: Path, relative: str) -> Path:
    """Join *relative* onto *base* and verify the result stays inside *base*.

    Symlinks are resolved before the containment check, so a link pointing
    outside the artifact directory is rejected as well.
    """
    clean = normalize_relative_path(relative)
    root = base.resolve()
    target = (root / clean).resolve()
    if target != root and not target.is_relative_to(root):
        raise PathTraversal(relative)
    return target


class FileLayout:
    """Normalized file paths of one artifact tree and the directories they imply.

    ``add`` raises ``ValueError`` when a file would sit where a directory is
    needed, e.g. ``a`` together with ``a/b.txt``.
    """

    def __init__(self) -> None:
        self.files: set[str] = set()
        self.dirs: set[str] = set()

    def add(self, path: str) -> None:
        if path in self.dirs:
            raise ValueError(f"Path '{path}' is both a file and a directory")
        parents = [p.as_posix() for p in PurePosixPath(path).parents if p.as_posix() != "."]
        for parent in parents:
            if parent in self.files:
                raise ValueError(f"Path '{parent}' is both a file and a directory")
        self.files.add(path)
        self.dirs.update(parents)
