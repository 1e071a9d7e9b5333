"""
scopepack - build config loader.

File: src/scopepack/config/loader.py

Purpose
- Layer the effective build config: defaults, then ``scopepack.toml``, then
  ``SCOPEPACK_*`` environment variables, then CLI overrides.

Functional requirements
- Fail before any filesystem mutation when the config file is missing or invalid.
- Every config field has exactly one environment variable, named from its
  dotted path (``build.prefixer.namespace_prefix`` ->
  ``SCOPEPACK_BUILD_PREFIXER_NAMESPACE_PREFIX``).
- Relative paths in the config are resolved against the project root.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from scopepack.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    to_build_configuration,
)
from scopepack.constants import CONFIG_FILE_NAME
from scopepack.domain.models import AUTO_SCOPE, BuildConfiguration
from scopepack.errors import ConfigurationError

DEFAULT_CONFIG_FILE: Final[str] = CONFIG_FILE_NAME
ENV_PREFIX: Final[str] = "SCOPEPACK_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

ConfigPath = tuple[str, ...]


class ConfigLoadError(ConfigurationError):
    """Raised when config cannot be read or an override cannot be coerced."""


def _to_text(raw: str) -> str:
    return raw


def _to_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _to_scope(raw: str) -> str | list[str]:
    return AUTO_SCOPE if raw.lower() == AUTO_SCOPE else _to_list(raw)


def _to_flag(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _to_seconds(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


# One entry per configurable field; anything absent here is file-only.
_ENV_BINDINGS: Final[tuple[tuple[ConfigPath, Callable[[str], object]], ...]] = (
    (("artifact_id",), _to_text),
    (("build", "output_dir"), _to_text),
    (("build", "composer_cleanup"), _to_flag),
    (("build", "ignore_platform_reqs"), _to_flag),
    (("build", "archive"), _to_flag),
    (("build", "source_dirs"), _to_list),
    (("build", "asset_dirs"), _to_list),
    (("build", "entry_file"), _to_text),
    (("build", "docs"), _to_list),
    (("build", "prefixer", "enabled"), _to_flag),
    (("build", "prefixer", "namespace_prefix"), _to_text),
    (("build", "prefixer", "include_packages"), _to_scope),
    (("build", "installer", "command"), _to_list),
    (("build", "installer", "timeout_seconds"), _to_seconds),
    (("observability", "log_level"), _to_text),
    (("observability", "log_dir"), _to_text),
    (("observability", "log_to_stderr"), _to_flag),
)


def env_var_name(path: ConfigPath) -> str:
    """Return the environment variable that overrides the config field at ``path``."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def load_config(
    config_path: str | Path | None = None,
    *,
    project_root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config as a plain dictionary."""

    root = _project_root(project_root)
    source = _config_file(config_path, root)

    effective = default_config()
    for layer in (
        read_config_file(source),
        env_overrides(os.environ if environ is None else environ),
        cli_layer(cli_overrides or {}),
    ):
        effective = merge_config(effective, layer)

    validated = assert_valid_config(effective)
    return assert_valid_config(normalize_paths(validated, base_dir=root))


def load_build_configuration(
    project_root: str | Path,
    *,
    config_path: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> BuildConfiguration:
    """Load the effective config for ``project_root`` and freeze it."""

    root = _project_root(project_root)
    payload = load_config(
        config_path,
        project_root=root,
        cli_overrides=cli_overrides,
        environ=environ,
    )
    return to_build_configuration(payload, project_root=root)


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigLoadError(f"config file not found: {path}")
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``SCOPEPACK_*`` variables into a nested override layer."""

    layer: dict[str, Any] = {}
    for path, coerce in _ENV_BINDINGS:
        name = env_var_name(path)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} {exc}") from exc
        _assign(layer, path, value)
    return layer


def cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    """Turn ``{"build.archive": False}`` style overrides into a nested layer.

    ``None`` means the flag was not given and is skipped.
    """

    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        value = overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _assign(layer, path, value)
    return layer


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve the path-valued fields of ``config`` against ``base_dir``."""

    normalized = merge_config({}, config)
    for path in PATH_FIELDS:
        parent = normalized
        for part in path[:-1]:
            parent = parent.get(part)
            if not isinstance(parent, dict):
                break
        else:
            value = parent.get(path[-1])
            if isinstance(value, str):
                parent[path[-1]] = _absolute_posix(value, base_dir)
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _project_root(project_root: str | Path | None) -> Path:
    root = Path.cwd() if project_root is None else Path(project_root).expanduser()
    return root.resolve()


def _config_file(config_path: str | Path | None, root: Path) -> Path:
    if config_path is None:
        return root / DEFAULT_CONFIG_FILE
    candidate = Path(config_path).expanduser()
    return (candidate if candidate.is_absolute() else root / candidate).resolve()


def _assign(target: dict[str, Any], path: ConfigPath, value: object) -> None:
    for part in path[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = target[part] = {}
        target = child
    target[path[-1]] = value


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "cli_layer",
    "dump_effective_config",
    "env_overrides",
    "env_var_name",
    "load_build_configuration",
    "load_config",
    "normalize_paths",
    "read_config_file",
]
