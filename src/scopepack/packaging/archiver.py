"""Deterministic ZIP packaging of a finished build tree."""

from __future__ import annotations

import importlib.util
import os
import stat
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Protocol

import structlog

from scopepack.errors import ArchiveIOError, ArchiveUnavailable
from scopepack.utils.hashing import sha256_file

_ZIP_FIXED_TIMESTAMP: Final[tuple[int, int, int, int, int, int]] = (1980, 1, 1, 0, 0, 0)
_FILE_MODE: Final[int] = 0o100644
_EXECUTABLE_FILE_MODE: Final[int] = 0o100755
_DIRECTORY_MODE: Final[int] = 0o040755
_MSDOS_DIRECTORY_FLAG: Final[int] = 0x10


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    path: Path
    entries: int
    sha256: str


class Archiver(Protocol):
    def is_available(self) -> bool: ...

    def archive(self, build_dir: Path, output_file: Path, root_name: str) -> ArchiveResult: ...


class ZipArchiver:
    """Writes one entry per directory and file, all rooted under ``root_name/``.

    Entries are sorted and carry a fixed timestamp and fixed permissions, so
    archiving the same tree twice yields identical bytes.
    """

    def __init__(self, *, compresslevel: int = 9, logger: Any | None = None) -> None:
        self._compresslevel = compresslevel
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def is_available(self) -> bool:
        return importlib.util.find_spec("zlib") is not None

    def archive(self, build_dir: Path, output_file: Path, root_name: str) -> ArchiveResult:
        if not self.is_available():
            raise ArchiveUnavailable("zlib is not available; ZIP deflate support is missing")

        root = Path(build_dir)
        if not root.is_dir():
            raise ArchiveIOError(f"build directory does not exist: {root}")
        output = Path(output_file)
        if _is_relative_to(output.resolve(), root.resolve()):
            raise ArchiveIOError(f"archive path must not be inside the build directory: {output}")

        members = _iter_members(root)
        temp_output = output.with_name(f".{output.name}.tmp")
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            temp_output.unlink(missing_ok=True)
            with zipfile.ZipFile(
                temp_output,
                mode="w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self._compresslevel,
                allowZip64=True,
            ) as bundle:
                for path, is_dir in members:
                    rel_path = path.relative_to(root).as_posix()
                    if is_dir:
                        bundle.writestr(_directory_info(f"{root_name}/{rel_path}/"), b"")
                    else:
                        bundle.writestr(
                            _file_info(f"{root_name}/{rel_path}", path),
                            path.read_bytes(),
                        )
            os.replace(temp_output, output)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveIOError(f"failed to write archive {output}: {exc}") from exc
        finally:
            if temp_output.exists():
                temp_output.unlink()

        result = ArchiveResult(path=output, entries=len(members), sha256=sha256_file(output))
        self._logger.info(
            "archive_written",
            path=output.as_posix(),
            entries=result.entries,
            sha256=result.sha256,
        )
        return result


def _iter_members(root: Path) -> list[tuple[Path, bool]]:
    """Pre-order listing: each directory precedes its children."""

    members: list[tuple[Path, bool]] = []
    for current_dir, dir_names, file_names in os.walk(root, topdown=True, followlinks=False):
        dir_names.sort()
        current = Path(current_dir)
        if current != root:
            members.append((current, True))
        for file_name in sorted(file_names):
            candidate = current / file_name
            if candidate.is_file():
                members.append((candidate, False))
    return members


def _directory_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(filename=name, date_time=_ZIP_FIXED_TIMESTAMP)
    info.compress_type = zipfile.ZIP_STORED
    info.external_attr = (_DIRECTORY_MODE << 16) | _MSDOS_DIRECTORY_FLAG
    info.create_system = 3
    return info


def _file_info(name: str, source: Path) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(filename=name, date_time=_ZIP_FIXED_TIMESTAMP)
    info.compress_type = zipfile.ZIP_DEFLATED
    executable = bool(source.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
    info.external_attr = ((_EXECUTABLE_FILE_MODE if executable else _FILE_MODE) & 0xFFFF) << 16
    info.create_system = 3
    return info


def _is_relative_to(candidate: Path, parent: Path) -> bool:
    try:
        candidate.relative_to(parent)
    except ValueError:
        return False
    return True


__all__ = ["ArchiveResult", "Archiver", "ZipArchiver"]
