"""
scopepack - filesystem utilities

File: src/scopepack/utils/fs.py

Purpose
- Write rewritten files without ever leaving a half-written file behind.
- Delete stale build output only when it sits inside the output directory.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "safe_delete",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` via a synced temp file in the same directory.

    The parent directory must already exist.
    """

    target = Path(path)
    directory = target.parent.resolve(strict=True)
    payload = data.encode(encoding) if isinstance(data, str) else data

    fd, scratch = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(scratch, target)
    except BaseException:
        Path(scratch).unlink(missing_ok=True)
        raise


def safe_delete(path: PathLike, workspace_root: PathLike) -> None:
    """Remove ``path`` (file, tree, or symlink) if it lives strictly inside ``workspace_root``.

    A symlink is unlinked; its target is never followed.
    """

    workspace = Path(workspace_root).resolve(strict=True)
    target = Path(path)
    location = target.parent.resolve(strict=True) / target.name
    if location == workspace or workspace not in location.parents:
        raise ValueError(f"refusing to delete path outside workspace root: {target}")

    if target.is_symlink():
        target.unlink()
    elif workspace not in target.resolve(strict=True).parents:
        raise ValueError(f"refusing to delete path outside workspace root: {target}")
    elif target.is_dir():
        shutil.rmtree(target)
    else:
        target.unlink()
