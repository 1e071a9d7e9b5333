"""Frozen domain models shared by the resolver, rewriter, and pipeline."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final, Literal

from scopepack.constants import (
    ARCHIVE_SUFFIX,
    DEFAULT_ASSET_DIRS,
    DEFAULT_DOCS,
    DEFAULT_INSTALLER_COMMAND,
    DEFAULT_INSTALLER_TIMEOUT_SECONDS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SOURCE_DIRS,
    NAMESPACE_SEPARATOR,
    SOURCE_EXTENSION,
)
from scopepack.errors import ConfigurationError

AUTO_SCOPE: Final[Literal["auto"]] = "auto"

ScopeSetting = frozenset[str] | Literal["auto"]

_NAMESPACE_RE: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z_\x80-\xff][A-Za-z0-9_\x80-\xff]*(?:\\[A-Za-z_\x80-\xff][A-Za-z0-9_\x80-\xff]*)*$"
)


class RewriteMode(StrEnum):
    """Pattern family applied by the rewriter to one file."""

    DECLARATION = "declaration"
    REFERENCE = "reference"
    METADATA_ENTRY = "metadata_entry"


class PipelineState(StrEnum):
    VALIDATING = "validating"
    PREPARING = "preparing"
    RESOLVING = "resolving"
    COPYING = "copying"
    ARCHIVING = "archiving"
    DONE = "done"
    FAILED = "failed"


def clean_namespace(namespace: str) -> str:
    """Strip surrounding separators and whitespace from a namespace string."""

    return namespace.strip().strip(NAMESPACE_SEPARATOR)


def is_valid_namespace(namespace: str) -> bool:
    return bool(_NAMESPACE_RE.fullmatch(namespace))


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    """Validated, immutable settings for one build invocation."""

    project_root: Path
    artifact_id: str
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    prefix_enabled: bool = False
    namespace_prefix: str = ""
    scope_packages: ScopeSetting = AUTO_SCOPE
    composer_cleanup: bool = True
    ignore_platform_reqs: bool = False
    archive: bool = True
    source_dirs: tuple[str, ...] = DEFAULT_SOURCE_DIRS
    asset_dirs: tuple[str, ...] = DEFAULT_ASSET_DIRS
    entry_file: str | None = None
    docs: tuple[str, ...] = DEFAULT_DOCS
    installer_command: tuple[str, ...] = DEFAULT_INSTALLER_COMMAND
    installer_timeout_seconds: float = DEFAULT_INSTALLER_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        artifact_id = self.artifact_id.strip() if isinstance(self.artifact_id, str) else ""
        if not artifact_id:
            raise ConfigurationError("configuration missing required 'artifact_id'")
        if artifact_id in {".", ".."} or "/" in artifact_id or "\\" in artifact_id:
            raise ConfigurationError(
                f"'artifact_id' must be a single path segment, got {artifact_id!r}"
            )
        object.__setattr__(self, "artifact_id", artifact_id)

        prefix = clean_namespace(self.namespace_prefix or "")
        if self.prefix_enabled:
            if not prefix:
                raise ConfigurationError(
                    "configuration missing 'build.prefixer.namespace_prefix' "
                    "while prefixing is enabled"
                )
            if not is_valid_namespace(prefix):
                raise ConfigurationError(
                    f"'build.prefixer.namespace_prefix' is not a valid namespace: {prefix!r}"
                )
        object.__setattr__(self, "namespace_prefix", prefix)

        if self.scope_packages != AUTO_SCOPE:
            object.__setattr__(self, "scope_packages", frozenset(self.scope_packages))
        if self.installer_timeout_seconds <= 0:
            raise ConfigurationError("'build.installer.timeout_seconds' must be > 0")
        if not self.installer_command:
            raise ConfigurationError("'build.installer.command' must not be empty")

        root = Path(self.project_root)
        object.__setattr__(self, "project_root", root)
        output_dir = Path(self.output_dir)
        if not output_dir.is_absolute():
            output_dir = root / output_dir
        object.__setattr__(self, "output_dir", output_dir)

    @property
    def build_dir(self) -> Path:
        return self.output_dir / self.artifact_id

    @property
    def archive_path(self) -> Path:
        return self.output_dir / f"{self.artifact_id}{ARCHIVE_SUFFIX}"

    @property
    def resolved_entry_file(self) -> str:
        if self.entry_file:
            return self.entry_file
        return f"{self.artifact_id}{SOURCE_EXTENSION}"

    @property
    def auto_scope(self) -> bool:
        return self.scope_packages == AUTO_SCOPE

    def to_dict(self) -> dict[str, object]:
        scope: object = (
            AUTO_SCOPE if self.scope_packages == AUTO_SCOPE else sorted(self.scope_packages)
        )
        return {
            "project_root": self.project_root.as_posix(),
            "artifact_id": self.artifact_id,
            "output_dir": self.output_dir.as_posix(),
            "prefix_enabled": self.prefix_enabled,
            "namespace_prefix": self.namespace_prefix,
            "scope_packages": scope,
            "composer_cleanup": self.composer_cleanup,
            "ignore_platform_reqs": self.ignore_platform_reqs,
            "archive": self.archive,
            "source_dirs": list(self.source_dirs),
            "asset_dirs": list(self.asset_dirs),
            "entry_file": self.resolved_entry_file,
            "docs": list(self.docs),
            "installer_command": list(self.installer_command),
            "installer_timeout_seconds": self.installer_timeout_seconds,
        }


@dataclass(frozen=True, slots=True)
class PackageDescriptor:
    """Namespace map and direct dependencies of one installed package."""

    id: str
    root_path: Path
    namespace_map: tuple[tuple[str, tuple[str, ...]], ...] = ()
    dependency_ids: frozenset[str] = frozenset()

    @property
    def namespaces(self) -> tuple[str, ...]:
        return tuple(namespace for namespace, _ in self.namespace_map)


class NamespaceMappingTable:
    """Original namespace -> prefixed namespace, first writer wins."""

    __slots__ = ("_entries", "_prefix")

    def __init__(self, prefix: str, entries: Iterable[str] = ()) -> None:
        self._prefix = clean_namespace(prefix)
        self._entries: dict[str, str] = {}
        self.extend(entries)

    @property
    def prefix(self) -> str:
        return self._prefix

    def add(self, namespace: str) -> bool:
        """Add ``namespace``; return ``False`` when it was already mapped or is empty."""

        original = clean_namespace(namespace)
        if not original or original in self._entries:
            return False
        self._entries[original] = f"{self._prefix}{NAMESPACE_SEPARATOR}{original}"
        return True

    def extend(self, namespaces: Iterable[str]) -> int:
        return sum(1 for namespace in namespaces if self.add(namespace))

    def union(self, descriptor: PackageDescriptor) -> int:
        return self.extend(descriptor.namespaces)

    def prefixed(self, namespace: str) -> str | None:
        return self._entries.get(clean_namespace(namespace))

    def entries_longest_first(self) -> tuple[tuple[str, str], ...]:
        return tuple(sorted(self._entries.items(), key=lambda item: (-len(item[0]), item[0])))

    def items(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._entries.items())

    def to_dict(self) -> dict[str, str]:
        return dict(sorted(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __contains__(self, namespace: object) -> bool:
        return isinstance(namespace, str) and clean_namespace(namespace) in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"NamespaceMappingTable(prefix={self._prefix!r}, entries={len(self._entries)})"

    @classmethod
    def from_mapping(cls, prefix: str, mapping: Mapping[str, object]) -> NamespaceMappingTable:
        return cls(prefix, mapping.keys())


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    """Structured result of one pipeline run."""

    state: PipelineState
    build_dir: Path | None = None
    archive_path: Path | None = None
    archived: bool = False
    archive_sha256: str | None = None
    failed_state: PipelineState | None = None
    error: str | None = None
    error_type: str | None = None
    warnings: tuple[str, ...] = ()
    rewritten_packages: tuple[str, ...] = ()
    installed_packages: tuple[str, ...] = ()
    namespace_count: int = 0
    files_rewritten: int = 0
    files_copied: int = 0
    stages: tuple[PipelineState, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "succeeded": self.succeeded,
            "build_dir": None if self.build_dir is None else self.build_dir.as_posix(),
            "archive_path": None if self.archive_path is None else self.archive_path.as_posix(),
            "archived": self.archived,
            "archive_sha256": self.archive_sha256,
            "failed_state": None if self.failed_state is None else self.failed_state.value,
            "error": self.error,
            "error_type": self.error_type,
            "warnings": list(self.warnings),
            "rewritten_packages": list(self.rewritten_packages),
            "installed_packages": list(self.installed_packages),
            "namespace_count": self.namespace_count,
            "files_rewritten": self.files_rewritten,
            "files_copied": self.files_copied,
            "stages": [stage.value for stage in self.stages],
        }


__all__ = [
    "AUTO_SCOPE",
    "BuildConfiguration",
    "BuildOutcome",
    "NamespaceMappingTable",
    "PackageDescriptor",
    "PipelineState",
    "RewriteMode",
    "ScopeSetting",
    "clean_namespace",
    "is_valid_namespace",
]
