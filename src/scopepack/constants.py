"""Stable constants shared across the build pipeline."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Host runtime (PHP) lexical conventions.
NAMESPACE_SEPARATOR: Final[str] = "\\"
SOURCE_EXTENSION: Final[str] = ".php"

# Project layout.
CONFIG_FILE_NAME: Final[str] = "scopepack.toml"
MANIFEST_FILE_NAME: Final[str] = "composer.json"
LOCK_FILE_NAME: Final[str] = "composer.lock"
VENDOR_DIR: Final[PurePosixPath] = PurePosixPath("vendor")
INSTALLER_METADATA_DIR: Final[PurePosixPath] = PurePosixPath("vendor/composer")
INSTALLED_METADATA_FILE: Final[PurePosixPath] = PurePosixPath("vendor/composer/installed.json")
ARCHIVE_SUFFIX: Final[str] = ".zip"

# Defaults for optional build settings.
DEFAULT_OUTPUT_DIR: Final[str] = "dist"
DEFAULT_SOURCE_DIRS: Final[tuple[str, ...]] = ("src",)
DEFAULT_ASSET_DIRS: Final[tuple[str, ...]] = ("assets",)
DEFAULT_DOCS: Final[tuple[str, ...]] = ("README.md",)
DEFAULT_INSTALLER_COMMAND: Final[tuple[str, ...]] = ("composer",)
DEFAULT_INSTALLER_TIMEOUT_SECONDS: Final[float] = 600.0
DEFAULT_LOG_DIR: Final[str] = ".scopepack/logs"

# Dependency ids that belong to the runtime itself, never to a bundled package.
PLATFORM_PACKAGE_IDS: Final[frozenset[str]] = frozenset(
    {
        "php",
        "php-64bit",
        "php-ipv6",
        "php-zts",
        "php-debug",
        "hhvm",
        "composer",
        "composer-plugin-api",
        "composer-runtime-api",
    }
)
PLATFORM_PACKAGE_PREFIXES: Final[tuple[str, ...]] = ("ext-", "lib-")

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "ARCHIVE_SUFFIX",
    "CONFIG_FILE_NAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ASSET_DIRS",
    "DEFAULT_DOCS",
    "DEFAULT_INSTALLER_COMMAND",
    "DEFAULT_INSTALLER_TIMEOUT_SECONDS",
    "DEFAULT_LOG_DIR",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_SOURCE_DIRS",
    "INSTALLED_METADATA_FILE",
    "INSTALLER_METADATA_DIR",
    "LOCK_FILE_NAME",
    "MANIFEST_FILE_NAME",
    "NAMESPACE_SEPARATOR",
    "PLATFORM_PACKAGE_IDS",
    "PLATFORM_PACKAGE_PREFIXES",
    "SOURCE_EXTENSION",
    "VENDOR_DIR",
]
