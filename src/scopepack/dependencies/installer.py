"""Dependency installer capability and its Composer subprocess implementation."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog

from scopepack.constants import DEFAULT_INSTALLER_COMMAND, DEFAULT_INSTALLER_TIMEOUT_SECONDS
from scopepack.errors import DependencyInstallError, InstallTimeoutError

PRODUCTION_INSTALL_FLAGS: tuple[str, ...] = (
    "install",
    "--no-dev",
    "--optimize-autoloader",
    "--no-interaction",
    "--prefer-dist",
)
IGNORE_PLATFORM_REQS_FLAG = "--ignore-platform-reqs"


@dataclass(frozen=True, slots=True)
class CommandExecutionResult:
    """Normalized subprocess execution result."""

    command: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class InstallResult:
    """Outcome of a successful production install."""

    command: tuple[str, ...]
    directory: Path
    output: str


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandExecutionResult: ...


class DependencyInstaller(Protocol):
    """Installs production dependencies for the manifest found in ``directory``."""

    def install_production_dependencies(
        self,
        directory: Path,
        *,
        ignore_platform_reqs: bool = False,
        timeout_seconds: float = DEFAULT_INSTALLER_TIMEOUT_SECONDS,
    ) -> InstallResult: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
    ) -> CommandExecutionResult:
        try:
            completed = subprocess.run(
                list(command),
                cwd=cwd,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise InstallTimeoutError(
                f"command timed out after {timeout_seconds} seconds: {' '.join(command)}",
                command=command,
            ) from exc
        except OSError as exc:
            raise DependencyInstallError(
                f"unable to run installer {command[0]!r}: {exc}",
                command=command,
            ) from exc

        return CommandExecutionResult(
            command=tuple(command),
            cwd=cwd,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


class ComposerInstaller:
    """Runs ``composer install`` in production mode."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_INSTALLER_COMMAND,
        *,
        runner: CommandRunner | None = None,
        logger: Any | None = None,
    ) -> None:
        if not command:
            raise ValueError("installer command must not be empty")
        self._command = tuple(command)
        self._runner = runner if runner is not None else SubprocessCommandRunner()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def build_command(self, *, ignore_platform_reqs: bool = False) -> tuple[str, ...]:
        command = [*self._command, *PRODUCTION_INSTALL_FLAGS]
        if ignore_platform_reqs:
            command.append(IGNORE_PLATFORM_REQS_FLAG)
        return tuple(command)

    def install_production_dependencies(
        self,
        directory: Path,
        *,
        ignore_platform_reqs: bool = False,
        timeout_seconds: float = DEFAULT_INSTALLER_TIMEOUT_SECONDS,
    ) -> InstallResult:
        command = self.build_command(ignore_platform_reqs=ignore_platform_reqs)
        self._logger.info(
            "installer_started",
            command=list(command),
            directory=directory.as_posix(),
            timeout_seconds=timeout_seconds,
        )
        result = self._runner.run(command, cwd=directory, timeout_seconds=timeout_seconds)
        if result.returncode != 0:
            self._logger.error(
                "installer_failed",
                command=list(command),
                returncode=result.returncode,
            )
            raise DependencyInstallError.from_command(
                command=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        output = "\n".join(part for part in (result.stdout, result.stderr) if part.strip())
        if not output:
            raise DependencyInstallError(
                f"installer produced no output: {' '.join(command)}",
                command=command,
                returncode=result.returncode,
            )

        self._logger.info("installer_finished", command=list(command), returncode=0)
        return InstallResult(command=command, directory=directory, output=output)


__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "ComposerInstaller",
    "DependencyInstaller",
    "IGNORE_PLATFORM_REQS_FLAG",
    "InstallResult",
    "PRODUCTION_INSTALL_FLAGS",
    "SubprocessCommandRunner",
]
