"""
scopepack - module root

File: src/scopepack/__init__.py

Purpose
- Package root for the namespace-prefixing build and packaging pipeline.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
