"""
scopepack - build pipeline orchestrator.

File: src/scopepack/pipeline.py

Purpose
- Sequence configuration, dependency materialization, namespace resolution,
  tree copying, and archiving into one build run with a structured outcome.

State machine
- VALIDATING -> PREPARING -> RESOLVING -> COPYING -> ARCHIVING -> DONE.
- FAILED is reachable from every state. Failing in VALIDATING leaves the
  filesystem untouched; failing later keeps the partial build tree on disk.

Non-functional requirements
- Single-threaded and sequential; the installer subprocess is the only
  blocking call and it runs with a timeout.
- No retries. Every error surfaces one message naming the failed precondition.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from scopepack.config.loader import load_build_configuration
from scopepack.constants import INSTALLER_METADATA_DIR, MANIFEST_FILE_NAME, VENDOR_DIR
from scopepack.dependencies.installer import ComposerInstaller, DependencyInstaller
from scopepack.dependencies.materializer import MaterializeOptions, materialize
from scopepack.domain.models import (
    BuildConfiguration,
    BuildOutcome,
    NamespaceMappingTable,
    PipelineState,
    RewriteMode,
)
from scopepack.errors import ArchiveUnavailable, ConfigurationError, ScopepackError
from scopepack.observability.logging import correlation_scope
from scopepack.packaging.archiver import ArchiveResult, Archiver, ZipArchiver
from scopepack.resolver.namespaces import (
    CachingDescriber,
    build_mapping_table,
    partition_materialized,
    resolve_scope,
)
from scopepack.rewriter.tree import CopyStats, copy_file, copy_tree
from scopepack.utils.fs import safe_delete

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class _Resolution:
    table: NamespaceMappingTable
    scope: frozenset[str]
    installed: frozenset[str]


class BuildPipeline:
    """One build invocation for the project at ``project_root``."""

    def __init__(
        self,
        project_root: str | Path,
        *,
        config: BuildConfiguration | None = None,
        config_path: str | Path | None = None,
        cli_overrides: Mapping[str, object] | None = None,
        environ: Mapping[str, str] | None = None,
        installer: DependencyInstaller | None = None,
        archiver: Archiver | None = None,
        logger: Any | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._project_root = Path(project_root)
        self._config = config
        self._config_path = config_path
        self._cli_overrides = dict(cli_overrides or {})
        self._environ = environ
        self._installer = installer
        self._archiver = archiver if archiver is not None else ZipArchiver()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._on_progress = on_progress

        self._state = PipelineState.VALIDATING
        self._stages: list[PipelineState] = []
        self._warnings: list[str] = []
        self._failure: BaseException | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def failure(self) -> BaseException | None:
        """The error that moved the pipeline to FAILED, if any."""
        return self._failure

    @property
    def config(self) -> BuildConfiguration | None:
        return self._config

    def run(self) -> BuildOutcome:
        config: BuildConfiguration | None = None
        resolution: _Resolution | None = None
        stats = CopyStats()
        archive: ArchiveResult | None = None

        try:
            with self._stage(PipelineState.VALIDATING):
                config = self._validate()
            with self._stage(PipelineState.PREPARING):
                self._prepare(config)
            with self._stage(PipelineState.RESOLVING):
                resolution = self._resolve(config)
            with self._stage(PipelineState.COPYING):
                stats = self._copy(config, resolution)
            with self._stage(PipelineState.ARCHIVING):
                archive = self._archive(config)
        except (ScopepackError, OSError) as exc:
            return self._fail(exc, config, resolution, stats)

        with self._stage(PipelineState.DONE):
            outcome = BuildOutcome(
                state=PipelineState.DONE,
                build_dir=config.build_dir,
                archive_path=None if archive is None else archive.path,
                archived=archive is not None,
                archive_sha256=None if archive is None else archive.sha256,
                warnings=tuple(self._warnings),
                rewritten_packages=tuple(sorted(resolution.scope)) if resolution.table else (),
                installed_packages=tuple(sorted(resolution.installed)),
                namespace_count=len(resolution.table),
                files_rewritten=stats.files_rewritten,
                files_copied=stats.files_copied,
                stages=tuple(self._stages),
            )
            self._logger.info("pipeline_done", **outcome.to_dict())
        return outcome

    def _validate(self) -> BuildConfiguration:
        config = self._config
        if config is None:
            config = load_build_configuration(
                self._project_root,
                config_path=self._config_path,
                cli_overrides=self._cli_overrides,
                environ=self._environ,
            )
            self._config = config

        build_dir = config.build_dir.resolve()
        project_root = config.project_root.resolve()
        if build_dir == project_root or _is_relative_to(project_root, build_dir):
            raise ConfigurationError(
                f"build directory {build_dir} would contain the project root {project_root}"
            )
        for name in (*config.source_dirs, *config.asset_dirs):
            input_dir = (project_root / name).resolve()
            if _is_relative_to(build_dir, input_dir):
                raise ConfigurationError(
                    f"build directory {build_dir} must not be inside input directory {name!r}"
                )

        if config.prefix_enabled:
            self._progress(f"Using namespace prefix: {config.namespace_prefix}")
        self._progress(f"Building distribution package for: {config.artifact_id}")
        return config

    def _prepare(self, config: BuildConfiguration) -> None:
        config.output_dir.mkdir(parents=True, exist_ok=True)
        build_dir = config.build_dir
        if build_dir.exists() or build_dir.is_symlink():
            try:
                safe_delete(build_dir, config.output_dir)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc
            self._progress(f"Cleaned build directory: {build_dir}")
        build_dir.mkdir(parents=True)
        config.archive_path.unlink(missing_ok=True)
        self._progress(f"Created directory: {build_dir}")

    def _resolve(self, config: BuildConfiguration) -> _Resolution:
        manifest = config.project_root / MANIFEST_FILE_NAME
        installed: frozenset[str] = frozenset()
        if manifest.is_file():
            installer = self._installer
            if installer is None:
                installer = ComposerInstaller(config.installer_command)
            result = materialize(
                manifest,
                config.build_dir,
                MaterializeOptions(
                    ignore_platform_reqs=config.ignore_platform_reqs,
                    composer_cleanup=config.composer_cleanup,
                    timeout_seconds=config.installer_timeout_seconds,
                ),
                installer,
            )
            installed = result.installed
            self._warn(*result.warnings)
            self._progress(f"Installed {len(installed)} production package(s)")
        else:
            self._logger.info("pipeline_no_dependencies", manifest=manifest.as_posix())
            self._progress(f"No {MANIFEST_FILE_NAME} found; building without dependencies")

        table = NamespaceMappingTable(config.namespace_prefix)
        if not config.prefix_enabled:
            return _Resolution(table=table, scope=frozenset(), installed=installed)

        resolution = resolve_scope(installed, config.scope_packages, logger=self._logger)
        self._warn(*resolution.warnings)
        vendor_dir = config.build_dir / VENDOR_DIR
        materialized = partition_materialized(
            resolution.packages & installed, vendor_dir, logger=self._logger
        )
        self._warn(*materialized.warnings)
        scope = materialized.packages
        describe = CachingDescriber(vendor_dir)
        table = build_mapping_table(scope, describe, config.namespace_prefix, logger=self._logger)
        self._progress(f"Resolved {len(table)} namespace(s) across {len(scope)} package(s)")
        return _Resolution(table=table, scope=scope, installed=installed)

    def _copy(self, config: BuildConfiguration, resolution: _Resolution) -> CopyStats:
        root = config.project_root
        build_dir = config.build_dir
        table = resolution.table
        prefix = config.namespace_prefix
        stats = CopyStats()

        for name in config.source_dirs:
            stats += self._copy_dir(root / name, build_dir / name, table, prefix)

        for package_id in sorted(resolution.scope):
            package_dir = build_dir / VENDOR_DIR / package_id
            with correlation_scope(package_id=package_id):
                stats += copy_tree(package_dir, package_dir, table, RewriteMode.DECLARATION, prefix)
            self._progress(f"Copied and processed vendor package: {package_id}")

        metadata_dir = build_dir / INSTALLER_METADATA_DIR
        if table and metadata_dir.is_dir():
            stats += copy_tree(
                metadata_dir, metadata_dir, table, RewriteMode.METADATA_ENTRY, prefix
            )
            self._progress(f"Processed installer metadata: {INSTALLER_METADATA_DIR}/")

        for name in config.asset_dirs:
            stats += self._copy_dir(root / name, build_dir / name, table, prefix)

        entry_file = config.resolved_entry_file
        entry_source = root / entry_file
        if entry_source.is_file():
            stats += copy_file(
                entry_source, build_dir / entry_file, table, RewriteMode.REFERENCE, prefix
            )
            self._progress(f"Copied and processed: {entry_file}")
        else:
            self._warn(f"main entry file not found: {entry_file}")

        for name in config.docs:
            stats += self._copy_verbatim(root / name, build_dir / name)

        self._warn(*stats.warnings)
        return stats

    def _copy_dir(
        self,
        source: Path,
        dest: Path,
        table: NamespaceMappingTable,
        prefix: str,
    ) -> CopyStats:
        if not source.is_dir():
            self._warn(f"directory not found: {source.name}/")
            return CopyStats()
        stats = copy_tree(source, dest, table, RewriteMode.REFERENCE, prefix)
        self._progress(f"Copied and processed: {source.name}/")
        return stats

    def _copy_verbatim(self, source: Path, dest: Path) -> CopyStats:
        if source.is_dir():
            shutil.copytree(source, dest, dirs_exist_ok=True)
            self._progress(f"Copied: {source.name}/")
            return CopyStats(directories=1)
        if source.is_file():
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, dest)
            self._progress(f"Copied: {source.name}")
            return CopyStats(files_copied=1)
        self._logger.debug("pipeline_doc_missing", path=source.as_posix())
        return CopyStats()

    def _archive(self, config: BuildConfiguration) -> ArchiveResult | None:
        if not config.archive:
            self._progress("Archiving disabled; produced folder output only")
            return None
        if not self._archiver.is_available():
            self._warn("archive support is unavailable; produced folder output only")
            return None
        try:
            result = self._archiver.archive(
                config.build_dir, config.archive_path, config.artifact_id
            )
        except ArchiveUnavailable as exc:
            self._warn(f"{exc}; produced folder output only")
            return None
        self._progress(f"Created: {result.path.name}")
        return result

    def _fail(
        self,
        exc: BaseException,
        config: BuildConfiguration | None,
        resolution: _Resolution | None,
        stats: CopyStats,
    ) -> BuildOutcome:
        failed_state = self._state
        self._failure = exc
        self._state = PipelineState.FAILED
        self._stages.append(PipelineState.FAILED)
        self._logger.error(
            "pipeline_failed",
            failed_state=failed_state.value,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        build_dir = None
        if config is not None and failed_state is not PipelineState.VALIDATING:
            build_dir = config.build_dir
        return BuildOutcome(
            state=PipelineState.FAILED,
            build_dir=build_dir,
            failed_state=failed_state,
            error=str(exc),
            error_type=type(exc).__name__,
            warnings=tuple(self._warnings),
            installed_packages=() if resolution is None else tuple(sorted(resolution.installed)),
            namespace_count=0 if resolution is None else len(resolution.table),
            files_rewritten=stats.files_rewritten,
            files_copied=stats.files_copied,
            stages=tuple(self._stages),
        )

    @contextmanager
    def _stage(self, state: PipelineState) -> Iterator[None]:
        self._state = state
        self._stages.append(state)
        with correlation_scope(stage=state.value):
            self._logger.debug("pipeline_stage_entered", stage=state.value)
            yield

    def _warn(self, *messages: str) -> None:
        for message in messages:
            if message in self._warnings:
                continue
            self._warnings.append(message)
            self._logger.warning("pipeline_warning", warning=message, stage=self._state.value)

    def _progress(self, message: str) -> None:
        if self._on_progress is not None:
            self._on_progress(message)


def _is_relative_to(candidate: Path, parent: Path) -> bool:
    try:
        candidate.relative_to(parent)
    except ValueError:
        return False
    return True


__all__ = ["BuildPipeline", "ProgressCallback"]
