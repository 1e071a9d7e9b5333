"""
scopepack - hashing utilities

File: src/scopepack/utils/hashing.py

Purpose
- SHA-256 digests for archives and build trees, so two builds of the same
  project can be compared byte-for-byte.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

PathLike = str | os.PathLike[str]

_CHUNK_BYTES = 1 << 20

__all__ = [
    "create_manifest",
    "sha256_file",
]


def sha256_file(path: PathLike, *, chunk_size: int = _CHUNK_BYTES) -> str:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def create_manifest(directory: PathLike) -> dict[str, str]:
    """Map every regular file under ``directory`` to its digest.

    Keys are relative POSIX paths in sorted order. Symlinks are not followed.
    """

    root = Path(directory).resolve(strict=True)
    digests = {
        path.relative_to(root).as_posix(): sha256_file(path)
        for path in root.rglob("*")
        if path.is_file() and not path.is_symlink()
    }
    return dict(sorted(digests.items()))
