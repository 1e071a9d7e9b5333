"""
scopepack - dependency materializer.

File: src/scopepack/dependencies/materializer.py

Purpose
- Stage a production-only copy of the project manifest in the build tree,
  install it, and inventory the packages that landed in ``vendor/``.

Functional requirements
- Development-only sections never reach the installer.
- ``path`` repositories are installed as real copies, never symlinks.
- Inventory prefers ``vendor/composer/installed.json`` (Composer 1 list or
  Composer 2 object) and falls back to a two-level ``vendor/<group>/<name>`` scan.
"""

from __future__ import annotations

import copy
import json
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from scopepack.constants import (
    DEFAULT_INSTALLER_TIMEOUT_SECONDS,
    INSTALLED_METADATA_FILE,
    INSTALLER_METADATA_DIR,
    LOCK_FILE_NAME,
    MANIFEST_FILE_NAME,
    VENDOR_DIR,
)
from scopepack.dependencies.installer import DependencyInstaller, InstallResult
from scopepack.errors import InvalidManifestError, ManifestParseError
from scopepack.utils.fs import atomic_write

DEV_ONLY_SECTIONS: Final[tuple[str, ...]] = ("require-dev", "autoload-dev")

INVENTORY_FROM_METADATA: Final[str] = "installed.json"
INVENTORY_FROM_SCAN: Final[str] = "directory-scan"

# vendor/ entries that are installer plumbing rather than package groups.
_NON_PACKAGE_GROUPS: Final[frozenset[str]] = frozenset({"bin", INSTALLER_METADATA_DIR.name})


@dataclass(frozen=True, slots=True)
class MaterializeOptions:
    ignore_platform_reqs: bool = False
    composer_cleanup: bool = True
    timeout_seconds: float = DEFAULT_INSTALLER_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class MaterializationResult:
    """Installed package ids plus non-fatal findings."""

    installed: frozenset[str]
    warnings: tuple[str, ...] = ()
    inventory_source: str = INVENTORY_FROM_METADATA
    install: InstallResult | None = None


def load_project_manifest(path: Path) -> dict[str, Any]:
    """Read the project ``composer.json``; any failure is an ``InvalidManifestError``."""

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise InvalidManifestError(path, "file not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidManifestError(path, str(exc)) from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidManifestError(path, f"not valid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise InvalidManifestError(path, "root must be an object")
    return payload


def prepare_manifest(manifest: Mapping[str, Any]) -> dict[str, Any]:
    """Return a production-only copy of ``manifest``."""

    prepared = copy.deepcopy(dict(manifest))
    for section in DEV_ONLY_SECTIONS:
        prepared.pop(section, None)

    repositories = prepared.get("repositories")
    if isinstance(repositories, Mapping):
        candidates = list(repositories.values())
    elif isinstance(repositories, list):
        candidates = repositories
    else:
        candidates = []
    for repository in candidates:
        if isinstance(repository, dict) and repository.get("type") == "path":
            options = repository.get("options")
            options = dict(options) if isinstance(options, Mapping) else {}
            options["symlink"] = False
            repository["options"] = options
    return prepared


def materialize(
    manifest_path: Path,
    build_dir: Path,
    options: MaterializeOptions,
    installer: DependencyInstaller,
    *,
    logger: Any | None = None,
) -> MaterializationResult:
    """Install production dependencies into ``build_dir`` and inventory them."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    manifest = load_project_manifest(manifest_path)
    prepared = prepare_manifest(manifest)

    staged_manifest = build_dir / MANIFEST_FILE_NAME
    atomic_write(
        staged_manifest,
        json.dumps(prepared, indent=4, ensure_ascii=False) + "\n",
    )
    lock_path = manifest_path.parent / LOCK_FILE_NAME
    staged_lock = build_dir / LOCK_FILE_NAME
    if lock_path.is_file():
        shutil.copy2(lock_path, staged_lock)

    install = installer.install_production_dependencies(
        build_dir,
        ignore_platform_reqs=options.ignore_platform_reqs,
        timeout_seconds=options.timeout_seconds,
    )

    installed, source = inventory_installed(build_dir / VENDOR_DIR)
    warnings: list[str] = []
    if source == INVENTORY_FROM_SCAN:
        warnings.append(
            f"{INSTALLED_METADATA_FILE} missing or empty; inventoried vendor/ by directory scan"
        )

    if options.composer_cleanup:
        staged_manifest.unlink(missing_ok=True)
        staged_lock.unlink(missing_ok=True)

    log.info(
        "materializer_installed",
        build_dir=build_dir.as_posix(),
        packages=sorted(installed),
        inventory_source=source,
        cleanup=options.composer_cleanup,
    )
    return MaterializationResult(
        installed=installed,
        warnings=tuple(warnings),
        inventory_source=source,
        install=install,
    )


def inventory_installed(vendor_dir: Path) -> tuple[frozenset[str], str]:
    """Return installed package ids and where they were read from."""

    metadata_path = vendor_dir.parent / INSTALLED_METADATA_FILE
    from_metadata = _read_installed_metadata(metadata_path)
    if from_metadata:
        return from_metadata, INVENTORY_FROM_METADATA
    return scan_vendor_directory(vendor_dir), INVENTORY_FROM_SCAN


def scan_vendor_directory(vendor_dir: Path) -> frozenset[str]:
    """Collect ``group/name`` ids from a two-level directory scan."""

    if not vendor_dir.is_dir():
        return frozenset()
    found: set[str] = set()
    for group in sorted(vendor_dir.iterdir()):
        if not group.is_dir() or group.name.startswith(".") or group.name in _NON_PACKAGE_GROUPS:
            continue
        for package in sorted(group.iterdir()):
            if package.is_dir() and not package.name.startswith("."):
                found.add(f"{group.name}/{package.name}".lower())
    return frozenset(found)


def _read_installed_metadata(path: Path) -> frozenset[str]:
    if not path.is_file():
        return frozenset()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestParseError(f"malformed installed-set metadata {path}: {exc}") from exc

    # Composer 2 wraps the list in {"packages": [...]}; Composer 1 writes the list directly.
    if isinstance(payload, Mapping):
        packages = payload.get("packages", [])
    else:
        packages = payload
    if not isinstance(packages, list):
        raise ManifestParseError(f"installed-set metadata has no package list: {path}")

    names: set[str] = set()
    for entry in packages:
        if isinstance(entry, Mapping):
            name = entry.get("name")
            if isinstance(name, str) and name.strip():
                names.add(name.strip().lower())
    return frozenset(names)


__all__ = [
    "DEV_ONLY_SECTIONS",
    "INVENTORY_FROM_METADATA",
    "INVENTORY_FROM_SCAN",
    "MaterializationResult",
    "MaterializeOptions",
    "inventory_installed",
    "load_project_manifest",
    "materialize",
    "prepare_manifest",
    "scan_vendor_directory",
]
