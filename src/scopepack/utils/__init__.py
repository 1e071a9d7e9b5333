"""Utility exports for filesystem and hashing helpers."""

from scopepack.utils.fs import atomic_write, safe_delete
from scopepack.utils.hashing import create_manifest, sha256_file

__all__ = [
    "atomic_write",
    "create_manifest",
    "safe_delete",
    "sha256_file",
]
