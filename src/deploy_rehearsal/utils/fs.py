"""
deploy-rehearsal — filesystem utilities

File: src/deploy_rehearsal/utils/fs.py

Purpose
- Create scratch directories for disposable clones.
- Delete them again without ever touching anything outside the scratch root.

Functional requirements
- Deletion refuses paths outside the given root and refuses the root itself.
- Symlinks are unlinked, never followed.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "make_scratch_directory",
    "safe_delete",
]


def make_scratch_directory(prefix: str, parent: PathLike | None = None) -> Path:
    """
    Create a fresh, uniquely named directory and return its resolved path.

    ``parent`` defaults to the system temp directory and is created when missing.
    """

    parent_dir: str | None = None
    if parent is not None:
        parent_path = Path(parent)
        parent_path.mkdir(parents=True, exist_ok=True)
        parent_dir = str(parent_path)
    return Path(tempfile.mkdtemp(prefix=prefix, dir=parent_dir)).resolve()


def safe_delete(path: PathLike, root: PathLike) -> None:
    """Delete ``path`` only if it lies strictly inside ``root``."""

    root_dir = Path(root).resolve(strict=True)
    if not root_dir.is_dir():
        raise NotADirectoryError(f"{root_dir!s} is not a directory")

    target = Path(path)
    candidate = target.parent.resolve(strict=True) / target.name
    if candidate == root_dir or not _is_relative_to(candidate, root_dir):
        raise ValueError(f"refusing to delete path outside scratch root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return

    resolved_target = target.resolve(strict=True)
    if resolved_target == root_dir or not _is_relative_to(resolved_target, root_dir):
        raise ValueError(f"refusing to delete path outside scratch root: {target!s}")

    if target.is_dir():
        shutil.rmtree(target)
        return

    target.unlink()


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
