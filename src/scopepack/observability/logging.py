"""
scopepack - structured run logging.

File: src/scopepack/observability/logging.py

Purpose
- Write one JSON object per line to ``<log_dir>/<run_id>/scopepack.jsonl`` for
  every build run, through a queue so file I/O never blocks the pipeline.
- Route ``structlog`` events from the pipeline components into the same sink.
- Carry correlation fields (``run_id``, ``artifact_id``, ``stage``,
  ``package_id``) through a ``contextvars`` scope.

Event shape
- ``timestamp`` (UTC, ``Z`` suffix), ``level``, ``logger``, ``message``.
- Correlation fields at the top level.
- Every other keyword under ``fields``, normalized to JSON types.
- Keys are sorted so two runs log byte-comparable lines.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "artifact_id", "stage", "package_id")

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "correlation"}

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "scopepack_correlation", default=()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_registered = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one run's log sink."""

    run_id: str
    base_log_dir: Path | str = Path(".scopepack/logs")
    logger_name: str = "scopepack"
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = "scopepack.jsonl"
    log_to_stderr: bool = False

    def resolved_level(self) -> int:
        if isinstance(self.level, int):
            return self.level
        level = logging.getLevelName(str(self.level).strip().upper())
        if not isinstance(level, int):
            raise ValueError(f"unsupported logging level {self.level!r}")
        return level

    def check(self) -> None:
        for name in ("run_id", "logger_name", "log_filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        if Path(self.log_filename).name != self.log_filename:
            raise ValueError("log_filename must not include path separators")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        self.resolved_level()

    @property
    def log_path(self) -> Path:
        return Path(self.base_log_dir) / self.run_id.strip() / self.log_filename


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = "scopepack",
) -> StructuredLoggingHandle:
    """Start run logging from an ``[observability]`` config section and wire structlog."""

    section = dict(observability_config or {})
    level = section.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else section.get("log_dir", ".scopepack/logs")
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else ".scopepack/logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stderr=bool(section.get("log_to_stderr", False)),
        )
    )
    configure_structlog()
    return handle


def configure_structlog() -> None:
    """Send ``structlog`` events to the stdlib logger of the same name.

    Keyword arguments become ``extra`` on the record, which the JSON formatter
    splits into correlation fields and ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, JSONValue] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": self._run_id,
        }

        stamped = getattr(record, "correlation", None)
        if isinstance(stamped, Mapping):
            event.update({str(key): str(value) for key, value in stamped.items()})

        extras: dict[str, JSONValue] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            if key in CORRELATION_KEYS and isinstance(value, str) and value.strip():
                event[key] = value.strip()
            elif key not in CORRELATION_KEYS:
                extras[key] = to_json_value(value)
        if extras:
            event["fields"] = extras

        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _CorrelatingQueueHandler(logging.handlers.QueueHandler):
    """Stamps the caller's correlation context on the record; drops records when full."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Context vars do not cross into the listener thread.
        record.correlation = get_correlation_context()
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


@dataclass(eq=False)
class StructuredLoggingHandle:
    """A running log sink. ``shutdown`` drains the queue and closes the file."""

    logger: logging.Logger
    run_id: str
    log_path: Path
    _queue: queue.Queue[logging.LogRecord] = field(repr=False)
    _queue_handler: _CorrelatingQueueHandler = field(repr=False)
    _sinks: tuple[logging.Handler, ...] = field(repr=False)
    _listener: logging.handlers.QueueListener = field(repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Start the queue-backed JSON-lines sink for ``config.run_id``.

    Any previously active sink is shut down first; one run logs at a time.
    """

    config.check()
    level = config.resolved_level()
    shutdown_logging()

    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = _JsonLinesFormatter(config.run_id.strip())

    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name.strip())
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _CorrelatingQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=config.run_id.strip(),
        log_path=log_path,
        _queue=log_queue,
        _queue_handler=queue_handler,
        _sinks=tuple(sinks),
        _listener=listener,
    )
    global _active, _atexit_registered
    with _active_lock:
        _active = handle
        if not _atexit_registered:
            atexit.register(shutdown_logging)
            _atexit_registered = True
    return handle


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle`` (default: the active sink) and forget it if active."""

    global _active
    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown()
    with _active_lock:
        if _active is target:
            _active = None


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Bind correlation fields for the current context; ``None`` unbinds a key."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        elif not value.strip():
            raise ValueError(f"correlation field {key!r} must not be empty")
        else:
            state[key] = value.strip()
    return _CORRELATION.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def to_json_value(value: object) -> JSONValue:
    """Normalize a log field to JSON types with a stable representation."""

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, Enum):
        return to_json_value(value.value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [to_json_value(item) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    return repr(value)


__all__ = [
    "CORRELATION_KEYS",
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
    "to_json_value",
]
