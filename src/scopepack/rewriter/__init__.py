"""Namespace rewriting for single texts and whole directory trees."""

from scopepack.rewriter.patterns import RewritePlan, rewrite
from scopepack.rewriter.tree import CopyStats, copy_file, copy_tree, is_source_file

__all__ = [
    "CopyStats",
    "RewritePlan",
    "copy_file",
    "copy_tree",
    "is_source_file",
    "rewrite",
]
