"""
scopepack - namespace mapping resolver.

File: src/scopepack/resolver/namespaces.py

Purpose
- Read a bundled package's ``composer.json`` into a ``PackageDescriptor``.
- Decide which installed packages are in scope for prefixing.
- Union namespace maps of in-scope packages (plus their in-scope direct
  dependencies) into one ``NamespaceMappingTable``.

Functional requirements
- Absence of an autoload section yields an empty map, never an error.
- Runtime ecosystem requirements (``php``, ``ext-*`` ...) never join a
  dependency walk.
- Iteration order over scope and dependencies is sorted so the table is
  identical across runs.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from scopepack.constants import (
    MANIFEST_FILE_NAME,
    NAMESPACE_SEPARATOR,
    PLATFORM_PACKAGE_IDS,
    PLATFORM_PACKAGE_PREFIXES,
)
from scopepack.domain.models import (
    AUTO_SCOPE,
    NamespaceMappingTable,
    PackageDescriptor,
    ScopeSetting,
    clean_namespace,
)
from scopepack.errors import ManifestParseError, MissingMetadataError

DescribeFn = Callable[[str], PackageDescriptor]


@dataclass(frozen=True, slots=True)
class ScopeResolution:
    """In-scope package ids plus warnings for configured-but-missing packages."""

    packages: frozenset[str]
    warnings: tuple[str, ...] = ()
    missing: frozenset[str] = frozenset()


def is_platform_dependency(package_id: str) -> bool:
    """Return ``True`` for requirements satisfied by the runtime rather than a package."""

    normalized = package_id.strip().lower()
    if normalized in PLATFORM_PACKAGE_IDS:
        return True
    if normalized.startswith(PLATFORM_PACKAGE_PREFIXES):
        return True
    return "/" not in normalized


def read_manifest(path: Path) -> dict[str, Any]:
    """Load a package ``composer.json`` as a JSON object."""

    if not path.is_file():
        raise MissingMetadataError(f"package metadata not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestParseError(f"malformed package metadata {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ManifestParseError(f"package metadata root must be an object: {path}")
    return payload


def describe_package(path: str | Path, *, package_id: str | None = None) -> PackageDescriptor:
    """Build the descriptor for the package rooted at ``path``."""

    root = Path(path)
    manifest_path = root / MANIFEST_FILE_NAME
    manifest = read_manifest(manifest_path)

    raw_name = manifest.get("name")
    if isinstance(raw_name, str) and raw_name.strip():
        resolved_id = raw_name.strip().lower()
    elif package_id is not None:
        resolved_id = package_id.lower()
    else:
        resolved_id = f"{root.parent.name}/{root.name}".lower()

    return PackageDescriptor(
        id=resolved_id,
        root_path=root,
        namespace_map=namespace_map_from_manifest(manifest, source=manifest_path),
        dependency_ids=_dependency_ids(manifest, source=manifest_path),
    )


def namespace_map_from_manifest(
    manifest: Mapping[str, object],
    *,
    source: Path | str = MANIFEST_FILE_NAME,
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """Extract ``autoload.psr-4`` then ``autoload.psr-0`` namespaces, in declaration order."""

    autoload = manifest.get("autoload")
    if autoload is None:
        return ()
    if not isinstance(autoload, Mapping):
        raise ManifestParseError(f"'autoload' must be an object in {source}")

    entries: dict[str, tuple[str, ...]] = {}
    for standard in ("psr-4", "psr-0"):
        section = autoload.get(standard)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            raise ManifestParseError(f"'autoload.{standard}' must be an object in {source}")
        for raw_namespace, raw_paths in section.items():
            # psr-0 also allows underscore pseudo-namespaces like "Twig_".
            if standard == "psr-0" and NAMESPACE_SEPARATOR not in raw_namespace:
                continue
            namespace = clean_namespace(raw_namespace)
            if not namespace or namespace in entries:
                continue
            entries[namespace] = _as_paths(raw_paths, f"autoload.{standard}.{namespace}", source)
    return tuple(entries.items())


def detect_root_namespace(manifest: Mapping[str, object]) -> str | None:
    """Return the first-party namespace mapped to ``src/``, else the first PSR-4 namespace."""

    try:
        namespace_map = namespace_map_from_manifest(manifest)
    except ManifestParseError:
        return None
    for namespace, paths in namespace_map:
        if any(path.rstrip("/") == "src" for path in paths):
            return namespace
    if namespace_map:
        return namespace_map[0][0]
    return None


def resolve_scope(
    all_installed: Iterable[str],
    configured: ScopeSetting,
    *,
    logger: Any | None = None,
) -> ScopeResolution:
    """Return the packages to prefix.

    ``"auto"`` selects every installed package. An explicit set is returned
    verbatim; ids that are not installed only produce warnings.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    installed = frozenset(package_id.lower() for package_id in all_installed)
    if configured == AUTO_SCOPE:
        return ScopeResolution(packages=installed)

    selected = frozenset(package_id.lower() for package_id in configured)
    missing = frozenset(selected - installed)
    warnings = tuple(f"configured package is not installed: {item}" for item in sorted(missing))
    for package_id in sorted(missing):
        log.warning("resolver_scope_package_missing", package_id=package_id)
    return ScopeResolution(packages=selected, warnings=warnings, missing=missing)


def partition_materialized(
    packages: Iterable[str],
    vendor_dir: Path,
    *,
    logger: Any | None = None,
) -> ScopeResolution:
    """Keep the packages that have a ``composer.json`` under ``vendor_dir``.

    Metapackages and packages installed to a custom path are listed in the
    installed set but never get ``vendor/<id>/``; they are dropped with a warning.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    present: set[str] = set()
    absent: list[str] = []
    for package_id in sorted(packages):
        if (vendor_dir / package_id / MANIFEST_FILE_NAME).is_file():
            present.add(package_id)
            continue
        absent.append(package_id)
        log.warning("resolver_package_not_materialized", package_id=package_id)
    return ScopeResolution(
        packages=frozenset(present),
        warnings=tuple(f"vendor package not found: {package_id}" for package_id in absent),
        missing=frozenset(absent),
    )


def build_mapping_table(
    scope: Iterable[str],
    describe: DescribeFn,
    prefix: str,
    *,
    logger: Any | None = None,
) -> NamespaceMappingTable:
    """Union namespace maps for ``scope`` and the in-scope direct dependencies of each member."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    in_scope = frozenset(scope)
    table = NamespaceMappingTable(prefix)

    for package_id in sorted(in_scope):
        descriptor = describe(package_id)
        added = table.union(descriptor)
        for dependency_id in sorted(descriptor.dependency_ids):
            if is_platform_dependency(dependency_id) or dependency_id not in in_scope:
                continue
            added += table.union(describe(dependency_id))
        log.debug(
            "resolver_package_mapped",
            package_id=package_id,
            namespaces=list(descriptor.namespaces),
            added=added,
        )

    log.info("resolver_table_built", packages=len(in_scope), namespaces=len(table))
    return table


class CachingDescriber:
    """Memoizing ``describe`` callable over a ``vendor/`` directory for one run."""

    def __init__(self, vendor_dir: Path) -> None:
        self._vendor_dir = vendor_dir
        self._cache: dict[str, PackageDescriptor] = {}

    def __call__(self, package_id: str) -> PackageDescriptor:
        key = package_id.lower()
        cached = self._cache.get(key)
        if cached is None:
            cached = describe_package(self._vendor_dir / key, package_id=key)
            self._cache[key] = cached
        return cached

    @property
    def described(self) -> tuple[str, ...]:
        return tuple(sorted(self._cache))


def _dependency_ids(manifest: Mapping[str, object], *, source: Path) -> frozenset[str]:
    require = manifest.get("require")
    if require is None:
        return frozenset()
    if not isinstance(require, Mapping):
        raise ManifestParseError(f"'require' must be an object in {source}")
    return frozenset(str(key).strip().lower() for key in require if str(key).strip())


def _as_paths(value: object, path: str, source: Path | str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ManifestParseError(f"'{path}' must be a string or list of strings in {source}")


__all__ = [
    "CachingDescriber",
    "DescribeFn",
    "ScopeResolution",
    "build_mapping_table",
    "describe_package",
    "detect_root_namespace",
    "is_platform_dependency",
    "namespace_map_from_manifest",
    "partition_materialized",
    "read_manifest",
    "resolve_scope",
]
