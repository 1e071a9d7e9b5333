"""Shared fixtures: a sample project, a fake installer, and logging teardown."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog
from php_project import FakeInstaller, write_project

from scopepack.observability.logging import shutdown_logging

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()
    structlog.reset_defaults()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    return write_project(tmp_path / "project")


@pytest.fixture
def fake_installer() -> FakeInstaller:
    return FakeInstaller()
