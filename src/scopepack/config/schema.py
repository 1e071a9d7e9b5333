"""
scopepack - configuration schema and validation.

File: src/scopepack/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.
- Conversion of a validated payload into a ``BuildConfiguration``.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys so typos in ``scopepack.toml`` fail loudly.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from scopepack.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_ASSET_DIRS,
    DEFAULT_DOCS,
    DEFAULT_INSTALLER_COMMAND,
    DEFAULT_INSTALLER_TIMEOUT_SECONDS,
    DEFAULT_LOG_DIR,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SOURCE_DIRS,
    NAMESPACE_SEPARATOR,
)
from scopepack.domain.models import (
    AUTO_SCOPE,
    BuildConfiguration,
    ScopeSetting,
    clean_namespace,
    is_valid_namespace,
)
from scopepack.errors import ConfigurationError

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Config paths that should be normalized relative to the project root.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("build", "output_dir"),
    ("observability", "log_dir"),
)

DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "build": {
        "output_dir": DEFAULT_OUTPUT_DIR,
        "composer_cleanup": True,
        "ignore_platform_reqs": False,
        "archive": True,
        "source_dirs": list(DEFAULT_SOURCE_DIRS),
        "asset_dirs": list(DEFAULT_ASSET_DIRS),
        "docs": list(DEFAULT_DOCS),
        "prefixer": {
            "enabled": False,
            "include_packages": AUTO_SCOPE,
        },
        "installer": {
            "command": list(DEFAULT_INSTALLER_COMMAND),
            "timeout_seconds": DEFAULT_INSTALLER_TIMEOUT_SECONDS,
        },
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": DEFAULT_LOG_DIR,
        "log_to_stderr": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ConfigurationError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> dict[str, Any]:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is aliased."""

    merged: dict[str, Any] = {}
    _overlay(merged, base)
    _overlay(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def to_build_configuration(
    config: Mapping[str, object],
    *,
    project_root: Path,
) -> BuildConfiguration:
    """Convert a validated payload into the immutable ``BuildConfiguration``."""

    validated = assert_valid_config(merge_config(default_config(), config))
    build = validated["build"]
    prefixer = build["prefixer"]
    installer = build["installer"]

    include = prefixer["include_packages"]
    scope: ScopeSetting = AUTO_SCOPE if include == AUTO_SCOPE else frozenset(include)

    return BuildConfiguration(
        project_root=project_root,
        artifact_id=validated["artifact_id"],
        output_dir=Path(build["output_dir"]),
        prefix_enabled=prefixer["enabled"],
        namespace_prefix=prefixer.get("namespace_prefix", ""),
        scope_packages=scope,
        composer_cleanup=build["composer_cleanup"],
        ignore_platform_reqs=build["ignore_platform_reqs"],
        archive=build["archive"],
        source_dirs=tuple(build["source_dirs"]),
        asset_dirs=tuple(build["asset_dirs"]),
        entry_file=build.get("entry_file"),
        docs=tuple(build["docs"]),
        installer_command=tuple(installer["command"]),
        installer_timeout_seconds=installer["timeout_seconds"],
    )


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"meta", "artifact_id", "build", "observability"}, "", issues)
    _require_keys(payload, {"artifact_id", "build"}, "", issues)

    out: dict[str, Any] = {}
    if "artifact_id" in payload:
        artifact_id = _as_str(payload["artifact_id"], "artifact_id", issues)
        if artifact_id is not None:
            if artifact_id in {".", ".."} or "/" in artifact_id or "\\" in artifact_id:
                issues.add("artifact_id", "must be a single path segment")
            else:
                out["artifact_id"] = artifact_id

    _section(payload, key="meta", path="", issues=issues, validator=_validate_meta, out=out)
    _section(payload, key="build", path="", issues=issues, validator=_validate_build, out=out)
    _section(
        payload,
        key="observability",
        path="",
        issues=issues,
        validator=_validate_observability,
        out=out,
    )
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path, issues)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        key_path = _join(path, "schema_version")
        parsed = _as_int(payload["schema_version"], key_path, issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(
                    key_path,
                    f"schema version {parsed} is not supported (expected {ConfigSchemaVersion})",
                )
    return out


def _validate_build(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "output_dir",
        "composer_cleanup",
        "ignore_platform_reqs",
        "archive",
        "source_dirs",
        "asset_dirs",
        "entry_file",
        "docs",
        "prefixer",
        "installer",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, {"prefixer"}, path, issues)

    out: dict[str, Any] = {}
    if "output_dir" in payload:
        parsed_dir = _as_path_text(payload["output_dir"], _join(path, "output_dir"), issues)
        if parsed_dir is not None:
            out["output_dir"] = parsed_dir
    for flag in ("composer_cleanup", "ignore_platform_reqs", "archive"):
        if flag in payload:
            parsed_flag = _as_bool(payload[flag], _join(path, flag), issues)
            if parsed_flag is not None:
                out[flag] = parsed_flag
    for list_key in ("source_dirs", "asset_dirs", "docs"):
        if list_key in payload:
            parsed_list = _as_relative_path_list(payload[list_key], _join(path, list_key), issues)
            if parsed_list is not None:
                out[list_key] = parsed_list
    if "entry_file" in payload:
        parsed_entry = _as_relative_path(payload["entry_file"], _join(path, "entry_file"), issues)
        if parsed_entry is not None:
            out["entry_file"] = parsed_entry

    _section(
        payload, key="prefixer", path=path, issues=issues, validator=_validate_prefixer, out=out
    )
    _section(
        payload, key="installer", path=path, issues=issues, validator=_validate_installer, out=out
    )
    return out


def _validate_prefixer(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"enabled", "namespace_prefix", "include_packages"}, path, issues)

    out: dict[str, Any] = {}
    enabled = False
    if "enabled" in payload:
        parsed_enabled = _as_bool(payload["enabled"], _join(path, "enabled"), issues)
        if parsed_enabled is not None:
            enabled = parsed_enabled
    out["enabled"] = enabled

    prefix_path = _join(path, "namespace_prefix")
    raw_prefix = payload.get("namespace_prefix")
    if raw_prefix is not None:
        if not isinstance(raw_prefix, str):
            issues.add(prefix_path, f"expected string, got {type(raw_prefix).__name__}")
        else:
            prefix = clean_namespace(raw_prefix)
            if prefix and not is_valid_namespace(prefix):
                issues.add(prefix_path, f"not a valid namespace: {prefix!r}")
            elif prefix:
                out["namespace_prefix"] = prefix
    if enabled and "namespace_prefix" not in out and not _issues_for(issues, prefix_path):
        issues.add(prefix_path, "missing required field while prefixing is enabled")

    if "include_packages" in payload:
        parsed_scope = _as_scope(
            payload["include_packages"], _join(path, "include_packages"), issues
        )
        if parsed_scope is not None:
            out["include_packages"] = parsed_scope
    return out


def _validate_installer(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"command", "timeout_seconds"}, path, issues)
    out: dict[str, Any] = {}
    if "command" in payload:
        parsed_command = _as_str_list(payload["command"], _join(path, "command"), issues)
        if parsed_command is not None:
            if not parsed_command:
                issues.add(_join(path, "command"), "must not be empty")
            else:
                out["command"] = parsed_command
    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.001
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"log_level", "log_dir", "log_to_stderr"}, path, issues)
    out: dict[str, Any] = {}
    if "log_level" in payload:
        raw_level = payload["log_level"]
        level = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        parsed_level = _as_enum(level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_dir" in payload:
        parsed_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_dir is not None:
            out["log_dir"] = parsed_dir
    if "log_to_stderr" in payload:
        parsed_flag = _as_bool(payload["log_to_stderr"], _join(path, "log_to_stderr"), issues)
        if parsed_flag is not None:
            out["log_to_stderr"] = parsed_flag
    return out


def _issues_for(issues: _IssueCollector, path: str) -> bool:
    return any(item.path == path for item in issues.items())


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_relative_path(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_path_text(value, path, issues)
    if parsed is None:
        return None
    candidate = Path(parsed)
    if candidate.is_absolute() or ".." in candidate.parts:
        issues.add(path, "must be a path relative to the project root")
        return None
    return candidate.as_posix()


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_relative_path_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    items = _as_str_list(value, path, issues)
    if items is None:
        return None
    out: list[str] = []
    for index, item in enumerate(items):
        parsed = _as_relative_path(item, f"{path}[{index}]", issues)
        if parsed is not None and parsed not in out:
            out.append(parsed)
    return out


def _as_scope(value: object, path: str, issues: _IssueCollector) -> str | list[str] | None:
    if isinstance(value, str):
        if value.strip().lower() == AUTO_SCOPE:
            return AUTO_SCOPE
        issues.add(path, f"expected {AUTO_SCOPE!r} or a list of package ids")
        return None
    items = _as_str_list(value, path, issues)
    if items is None:
        return None
    out: list[str] = []
    for index, item in enumerate(items):
        package_id = item.lower()
        if package_id.count("/") != 1 or NAMESPACE_SEPARATOR in package_id:
            issues.add(f"{path}[{index}]", f"expected '<vendor>/<name>', got {item!r}")
            continue
        if package_id not in out:
            out.append(package_id)
    return sorted(out)


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _overlay(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key, value in overlay.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _overlay(current, value)
        elif isinstance(value, Mapping):
            target[key] = {}
            _overlay(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "to_build_configuration",
    "validate_config",
]
