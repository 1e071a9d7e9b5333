"""Command-line interface router for scopepack."""

from __future__ import annotations

import argparse
import json
import secrets
import sys
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Final

from scopepack.config import (
    ConfigLoadError,
    ConfigValidationError,
    load_config,
    to_build_configuration,
)
from scopepack.constants import MANIFEST_FILE_NAME, VENDOR_DIR
from scopepack.dependencies.materializer import inventory_installed
from scopepack.domain.models import BuildConfiguration
from scopepack.errors import (
    ConfigurationError,
    DependencyInstallError,
    ManifestParseError,
)
from scopepack.observability import configure_structlog, correlation_scope, setup_logging
from scopepack.pipeline import BuildPipeline
from scopepack.resolver import (
    CachingDescriber,
    build_mapping_table,
    detect_root_namespace,
    partition_materialized,
    read_manifest,
    resolve_scope,
)
from scopepack.ui.render import CLIRenderer, create_renderer

RUN_ID_PREFIX: Final[str] = "run"


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="scopepack",
        description=(
            "scopepack: namespace-prefixing build and packaging for Composer projects.\n\n"
            "Common workflows:\n"
            "  scopepack build                 Build dist/<artifact_id>/ and its .zip\n"
            "  scopepack namespaces            Preview the namespace mapping table\n"
            "  scopepack config --json         Show the effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project-root",
        default=".",
        help="Project root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to scopepack TOML config (default: <project-root>/scopepack.toml).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # build ---------------------------------------------------------------
    build_parser_ = subparsers.add_parser(
        "build",
        parents=[common],
        help="Build the distributable folder and archive",
        description=(
            "Install production dependencies, prefix bundled namespaces, copy the\n"
            "project into <output_dir>/<artifact_id>/ and archive it.\n\n"
            "Examples:\n"
            "  scopepack build\n"
            "  scopepack build --ignore-platform-reqs --no-archive\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    build_parser_.add_argument(
        "--ignore-platform-reqs",
        action="store_true",
        default=False,
        help="Pass --ignore-platform-reqs to the dependency installer.",
    )
    build_parser_.add_argument(
        "--no-archive",
        action="store_true",
        default=False,
        help="Produce the build folder only, without the .zip archive.",
    )
    build_parser_.set_defaults(handler=_cmd_build)

    # namespaces ----------------------------------------------------------
    namespaces_parser = subparsers.add_parser(
        "namespaces",
        parents=[common],
        help="Show the namespace mapping a build would apply",
        description=(
            "Compute the namespace mapping table from the project's existing vendor/\n"
            "directory. Nothing is installed and nothing is written.\n\n"
            "Examples:\n"
            "  scopepack namespaces\n"
            "  scopepack namespaces --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    namespaces_parser.set_defaults(handler=_cmd_namespaces)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, and env.\n\n"
            "Examples:\n"
            "  scopepack config\n"
            "  scopepack config --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    configure_structlog()
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        _get_renderer(namespace).error(str(exc))
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_build(args: argparse.Namespace) -> int:
    project_root = _project_root(args)
    overrides: dict[str, object] = {
        "build.ignore_platform_reqs": True if _flag(args, "ignore_platform_reqs") else None,
        "build.archive": False if _flag(args, "no_archive") else None,
    }
    raw_config = _load_effective_config(args, cli_overrides=overrides)
    config = _to_build_configuration(raw_config, project_root)

    run_id = _new_run_id()
    observability = raw_config.get("observability")
    handle = setup_logging(
        observability if isinstance(observability, Mapping) else None,
        run_id=run_id,
    )
    as_json = _flag(args, "json")
    renderer = _get_renderer(args)
    try:
        with correlation_scope(artifact_id=config.artifact_id):
            pipeline = BuildPipeline(
                project_root,
                config=config,
                on_progress=None if as_json else renderer.step,
            )
            outcome = pipeline.run()
    finally:
        handle.shutdown()

    exit_code = 0 if outcome.succeeded else _failure_exit_code(pipeline.failure)

    if as_json:
        payload: dict[str, object] = {"command": "build", "run_id": run_id}
        payload.update(outcome.to_dict())
        payload["log_path"] = handle.log_path.as_posix()
        _emit_json(payload)
        return exit_code

    for warning in outcome.warnings:
        renderer.warning(warning)
    if not outcome.succeeded:
        stage = "" if outcome.failed_state is None else f" during {outcome.failed_state.value}"
        renderer.error(f"build failed{stage}: {outcome.error}")
        if outcome.build_dir is not None:
            renderer.kv("Partial build", outcome.build_dir.as_posix())
        renderer.kv("Log", handle.log_path.as_posix())
        return exit_code

    renderer.blank()
    renderer.ok("Build completed successfully!")
    renderer.kv("Build directory", outcome.build_dir)
    if outcome.archived:
        renderer.kv("Archive", outcome.archive_path)
        renderer.kv("SHA-256", outcome.archive_sha256)
    if config.prefix_enabled:
        renderer.kv(
            "Namespaces prefixed",
            f"{outcome.namespace_count} across {len(outcome.rewritten_packages)} package(s)",
        )
    renderer.kv("Files", f"rewritten={outcome.files_rewritten} copied={outcome.files_copied}")
    if _flag(args, "verbose"):
        if outcome.rewritten_packages:
            renderer.section("Prefixed packages:")
            renderer.items(list(outcome.rewritten_packages))
        renderer.kv("Log", handle.log_path.as_posix())
    return exit_code


def _cmd_namespaces(args: argparse.Namespace) -> int:
    project_root = _project_root(args)
    config = _to_build_configuration(_load_effective_config(args), project_root)
    if not config.namespace_prefix:
        raise CLIError(
            "configuration missing 'build.prefixer.namespace_prefix'; nothing to preview",
            exit_code=2,
        )

    vendor_dir = project_root / VENDOR_DIR
    try:
        installed, source = inventory_installed(vendor_dir)
        resolution = resolve_scope(installed, config.scope_packages)
        materialized = partition_materialized(resolution.packages & installed, vendor_dir)
        scope = materialized.packages
        table = build_mapping_table(scope, CachingDescriber(vendor_dir), config.namespace_prefix)
        root_namespace = _root_namespace(project_root)
    except ManifestParseError as exc:
        raise CLIError(str(exc), exit_code=1) from exc

    payload: dict[str, object] = {
        "command": "namespaces",
        "prefix": config.namespace_prefix,
        "prefix_enabled": config.prefix_enabled,
        "root_namespace": root_namespace,
        "inventory_source": source,
        "installed_packages": sorted(installed),
        "scoped_packages": sorted(scope),
        "warnings": [*resolution.warnings, *materialized.warnings],
        "mapping": table.to_dict(),
    }
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Prefix", config.namespace_prefix)
    renderer.kv("Prefixing enabled", str(config.prefix_enabled).lower())
    renderer.kv("Project namespace", root_namespace or "(none)")
    renderer.kv("Installed packages", f"{len(installed)} (from {source})")
    for warning in (*resolution.warnings, *materialized.warnings):
        renderer.warning(warning)
    if not table:
        renderer.text("\nNo namespaces would be prefixed.")
        return 0
    renderer.table(
        ["Original", "Prefixed"],
        [[original, prefixed] for original, prefixed in table.to_dict().items()],
        title="Namespace mapping:",
    )
    if _flag(args, "verbose"):
        renderer.section("Scoped packages:")
        renderer.items(sorted(scope))
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    payload: dict[str, object] = {"command": "config", "config": config}

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Project root", _project_root(args).as_posix())
    renderer.text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    """Create a CLI renderer from the parsed namespace."""

    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _project_root(args: argparse.Namespace) -> Path:
    raw = getattr(args, "project_root", None)
    if not isinstance(raw, str) or not raw.strip():
        raise CLIError("project_root must be a non-empty string", exit_code=2)
    candidate = Path(raw).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"project root is not a directory: {candidate}", exit_code=2)
    return candidate


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    try:
        return load_config(
            getattr(args, "config_path", None),
            project_root=_project_root(args),
            cli_overrides=cli_overrides,
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _to_build_configuration(
    config: Mapping[str, object],
    project_root: Path,
) -> BuildConfiguration:
    try:
        return to_build_configuration(config, project_root=project_root)
    except ConfigurationError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _root_namespace(project_root: Path) -> str | None:
    manifest_path = project_root / MANIFEST_FILE_NAME
    if not manifest_path.is_file():
        return None
    return detect_root_namespace(read_manifest(manifest_path))


def _failure_exit_code(failure: BaseException | None) -> int:
    if isinstance(failure, ConfigurationError):
        return 2
    if isinstance(failure, DependencyInstallError):
        return 3
    return 1


def _new_run_id() -> str:
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    return f"{RUN_ID_PREFIX}-{stamp}-{secrets.token_hex(4)}"


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = ["CLIError", "build_parser", "run_cli"]
