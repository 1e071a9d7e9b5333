"""Error taxonomy for the build pipeline.

Every error carries a single message that names the failing precondition. The
pipeline treats ``ArchiveUnavailable`` as a warning; everything else is fatal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


class ScopepackError(RuntimeError):
    """Base error for build failures."""


class ConfigurationError(ScopepackError, ValueError):
    """Raised for missing or invalid configuration and project manifests."""


class InvalidManifestError(ConfigurationError):
    """Raised when the project ``composer.json`` cannot be parsed."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"invalid package manifest {path}: {detail}")


class DependencyInstallError(ScopepackError):
    """Raised when the dependency installer subprocess fails."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)

    @classmethod
    def from_command(
        cls,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> DependencyInstallError:
        detail = stderr.strip() or stdout.strip()
        message = f"dependency install failed ({returncode}): {' '.join(command)}"
        if detail:
            message = f"{message}: {detail}"
        return cls(message, command=command, returncode=returncode, stdout=stdout, stderr=stderr)


class InstallTimeoutError(DependencyInstallError):
    """Raised when the installer does not finish within its timeout."""


class ManifestParseError(ScopepackError):
    """Raised when a bundled package's metadata is malformed."""


class MissingMetadataError(ManifestParseError):
    """Raised when a package directory has no metadata file."""


class ArchiveUnavailable(ScopepackError):
    """Raised when the host has no archival support; the build degrades to folder output."""


class ArchiveIOError(ScopepackError):
    """Raised when archive creation was attempted and failed mid-way."""


__all__ = [
    "ArchiveIOError",
    "ArchiveUnavailable",
    "ConfigurationError",
    "DependencyInstallError",
    "InstallTimeoutError",
    "InvalidManifestError",
    "ManifestParseError",
    "MissingMetadataError",
    "ScopepackError",
]
