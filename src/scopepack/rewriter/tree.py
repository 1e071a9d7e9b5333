"""Mirror a directory tree, rewriting PHP sources and copying everything else verbatim."""

from __future__ import annotations

import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from scopepack.constants import SOURCE_EXTENSION
from scopepack.domain.models import NamespaceMappingTable, RewriteMode
from scopepack.rewriter.patterns import RewritePlan
from scopepack.utils.fs import atomic_write


@dataclass(frozen=True, slots=True)
class CopyStats:
    """Counters for one copy operation."""

    directories: int = 0
    files_rewritten: int = 0
    files_copied: int = 0
    warnings: tuple[str, ...] = ()

    def __add__(self, other: CopyStats) -> CopyStats:
        return CopyStats(
            directories=self.directories + other.directories,
            files_rewritten=self.files_rewritten + other.files_rewritten,
            files_copied=self.files_copied + other.files_copied,
            warnings=self.warnings + other.warnings,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "directories": self.directories,
            "files_rewritten": self.files_rewritten,
            "files_copied": self.files_copied,
            "warnings": list(self.warnings),
        }


def copy_tree(
    source: str | Path,
    dest: str | Path,
    table: NamespaceMappingTable,
    mode: RewriteMode,
    prefix: str | None = None,
    *,
    logger: Any | None = None,
) -> CopyStats:
    """Mirror ``source`` into ``dest`` in pre-order.

    ``.php`` files go through the rewriter; every other file is copied byte for
    byte. When ``source`` and ``dest`` are the same directory the rewrite
    happens in place. Symlinked directories are followed for content, but the
    destination path always mirrors the unresolved source path.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    source_root = Path(source)
    dest_root = Path(dest)
    if not source_root.is_dir():
        raise NotADirectoryError(f"{source_root!s} is not a directory")

    plan = RewritePlan(table.prefix if prefix is None else prefix, table, mode)
    in_place = _same_directory(source_root, dest_root)
    dest_root.mkdir(parents=True, exist_ok=True)

    directories = 0
    rewritten = 0
    copied = 0
    warnings: list[str] = []

    for current_dir, dir_names, file_names in os.walk(source_root, topdown=True, followlinks=True):
        current = Path(current_dir)
        dir_names[:] = sorted(
            name for name in dir_names if not _is_cycle(current, name, warnings)
        )
        target_dir = dest_root / current.relative_to(source_root)
        target_dir.mkdir(parents=True, exist_ok=True)
        directories += 1

        for file_name in sorted(file_names):
            outcome = _copy_one(current / file_name, target_dir / file_name, plan, in_place)
            if outcome == "rewritten":
                rewritten += 1
            else:
                copied += 1
                if outcome == "undecodable":
                    warnings.append(f"copied non-UTF-8 source verbatim: {current / file_name}")

    stats = CopyStats(
        directories=directories,
        files_rewritten=rewritten,
        files_copied=copied,
        warnings=tuple(warnings),
    )
    log.debug(
        "tree_copied",
        source=source_root.as_posix(),
        dest=dest_root.as_posix(),
        mode=RewriteMode(mode).value,
        in_place=in_place,
        **stats.to_dict(),
    )
    return stats


def copy_file(
    source: str | Path,
    dest: str | Path,
    table: NamespaceMappingTable,
    mode: RewriteMode,
    prefix: str | None = None,
) -> CopyStats:
    """Copy a single file, rewriting it when it is a PHP source."""

    source_path = Path(source)
    dest_path = Path(dest)
    if not source_path.is_file():
        raise FileNotFoundError(f"{source_path!s} is not a file")
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    plan = RewritePlan(table.prefix if prefix is None else prefix, table, mode)
    in_place = source_path.resolve() == dest_path.resolve()
    outcome = _copy_one(source_path, dest_path, plan, in_place)
    if outcome == "rewritten":
        return CopyStats(files_rewritten=1)
    if outcome == "undecodable":
        return CopyStats(
            files_copied=1,
            warnings=(f"copied non-UTF-8 source verbatim: {source_path}",),
        )
    return CopyStats(files_copied=1)


def is_source_file(path: Path) -> bool:
    return path.suffix.lower() == SOURCE_EXTENSION


def _copy_one(source: Path, dest: Path, plan: RewritePlan, in_place: bool) -> str:
    if plan and is_source_file(source):
        raw = source.read_bytes()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            if not in_place:
                shutil.copy2(source, dest)
            return "undecodable"

        updated = plan.apply(text)
        if updated != text:
            mode = stat.S_IMODE(source.stat().st_mode)
            atomic_write(dest, updated.encode("utf-8"))
            os.chmod(dest, mode)
            return "rewritten"

    if not in_place:
        shutil.copy2(source, dest)
    return "copied"


def _is_cycle(parent: Path, name: str, warnings: list[str]) -> bool:
    candidate = parent / name
    if not candidate.is_symlink():
        return False
    target = os.path.realpath(candidate)
    here = os.path.realpath(parent)
    if here == target or here.startswith(target + os.sep):
        warnings.append(f"skipped symlink cycle: {candidate}")
        return True
    return False


def _same_directory(left: Path, right: Path) -> bool:
    if not right.exists():
        return False
    return os.path.samefile(left, right)


__all__ = ["CopyStats", "copy_file", "copy_tree", "is_source_file"]
