"""Production dependency installation and inventory."""

from scopepack.dependencies.installer import (
    CommandExecutionResult,
    CommandRunner,
    ComposerInstaller,
    DependencyInstaller,
    InstallResult,
    SubprocessCommandRunner,
)
from scopepack.dependencies.materializer import (
    MaterializationResult,
    MaterializeOptions,
    inventory_installed,
    load_project_manifest,
    materialize,
    prepare_manifest,
    scan_vendor_directory,
)

__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "ComposerInstaller",
    "DependencyInstaller",
    "InstallResult",
    "MaterializationResult",
    "MaterializeOptions",
    "SubprocessCommandRunner",
    "inventory_installed",
    "load_project_manifest",
    "materialize",
    "prepare_manifest",
    "scan_vendor_directory",
]
