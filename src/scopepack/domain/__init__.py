"""Domain types for build configuration, package metadata, and outcomes."""

from scopepack.domain.models import (
    AUTO_SCOPE,
    BuildConfiguration,
    BuildOutcome,
    NamespaceMappingTable,
    PackageDescriptor,
    PipelineState,
    RewriteMode,
    ScopeSetting,
    clean_namespace,
    is_valid_namespace,
)

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
