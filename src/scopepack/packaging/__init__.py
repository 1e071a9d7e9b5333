"""Container packaging for finished build trees."""

from scopepack.packaging.archiver import ArchiveResult, Archiver, ZipArchiver

__all__ = ["ArchiveResult", "Archiver", "ZipArchiver"]
