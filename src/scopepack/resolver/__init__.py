"""Namespace discovery over installed packages."""

from scopepack.resolver.namespaces import (
    CachingDescriber,
    DescribeFn,
    ScopeResolution,
    build_mapping_table,
    describe_package,
    detect_root_namespace,
    is_platform_dependency,
    namespace_map_from_manifest,
    partition_materialized,
    read_manifest,
    resolve_scope,
)

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
