"""
scopepack - unit tests for structured logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate JSON-lines output, correlation fields, and structlog routing.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from scopepack.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)


def _read_events(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_records_are_written_as_json_lines_with_correlation(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-1", base_log_dir=tmp_path, logger_name="scopepack")
    )
    logger = logging.getLogger("scopepack.pipeline")

    with correlation_scope(artifact_id="acme-app", stage="copying"):
        logger.info("copied package", extra={"package_id": "acme/lib", "files": 3})
    logger.debug("filtered out")
    handle.shutdown()

    assert handle.log_path == tmp_path / "run-1" / "scopepack.jsonl"
    events = _read_events(handle.log_path)
    assert len(events) == 1
    event = events[0]
    assert event["message"] == "copied package"
    assert event["level"] == "INFO"
    assert event["logger"] == "scopepack.pipeline"
    assert event["run_id"] == "run-1"
    assert event["artifact_id"] == "acme-app"
    assert event["stage"] == "copying"
    assert event["package_id"] == "acme/lib"
    assert event["fields"] == {"files": 3}
    assert str(event["timestamp"]).endswith("Z")


def test_structlog_events_route_into_the_run_log(tmp_path: Path) -> None:
    handle = setup_logging(
        {"log_level": "DEBUG", "log_dir": str(tmp_path)},
        run_id="run-2",
    )

    structlog.get_logger("scopepack.resolver").debug(
        "resolver_table_built",
        package_id="acme/lib",
        namespaces=frozenset({"Acme\\Util", "Acme\\Lib"}),
        path=Path("vendor/acme/lib"),
    )
    handle.shutdown()

    (event,) = _read_events(handle.log_path)
    assert event["message"] == "resolver_table_built"
    assert event["level"] == "DEBUG"
    assert event["package_id"] == "acme/lib"
    assert event["fields"] == {
        "namespaces": ["Acme\\Lib", "Acme\\Util"],
        "path": "vendor/acme/lib",
    }


def test_setup_replaces_previous_handle(tmp_path: Path) -> None:
    first = setup_structured_logging(LoggingConfig(run_id="a", base_log_dir=tmp_path))
    second = setup_structured_logging(LoggingConfig(run_id="b", base_log_dir=tmp_path))

    assert first.is_shutdown
    assert get_active_logging_handle() is second

    shutdown_logging()

    assert second.is_shutdown
    assert get_active_logging_handle() is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"run_id": " "},
        {"log_filename": "nested/file.jsonl"},
        {"queue_size": 0},
        {"level": "CHATTY"},
    ],
)
def test_invalid_logging_config_is_rejected(overrides: dict[str, object], tmp_path: Path) -> None:
    fields: dict[str, object] = {"run_id": "r", "base_log_dir": tmp_path}
    fields.update(overrides)

    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(**fields))  # type: ignore[arg-type]


def test_correlation_fields_nest_and_reset() -> None:
    token = set_correlation_fields(run_id="run-3")
    try:
        with correlation_scope(stage="resolving"):
            assert get_correlation_context() == {"run_id": "run-3", "stage": "resolving"}
            with correlation_scope(stage=None):
                assert get_correlation_context() == {"run_id": "run-3"}
        assert get_correlation_context() == {"run_id": "run-3"}
    finally:
        reset_correlation_fields(token)

    assert get_correlation_context() == {}
