"""Per-run JSON-lines logging built on structlog's stdlib integration.

Stdlib records under ``codegen_orchestrator`` and structlog events (turned into
stdlib records by :func:`configure_structlog`) travel through a bounded queue
to a listener thread. There a :class:`structlog.stdlib.ProcessorFormatter`
shapes every record into one JSON object, redacts it and renders it into
``<log_dir>/<run_id>/orchestrator.jsonl``.

Correlation fields (``run_id``, ``task_id``, ``wave`` ...) are held in
structlog's context variables; :func:`correlation_scope` binds them.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import math
import queue
import re
import threading
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from codegen_orchestrator.domain.models import JSONValue

EventDict = MutableMapping[str, Any]

REDACTED: Final[str] = "***REDACTED***"
LOG_FILENAME: Final[str] = "orchestrator.jsonl"
ROOT_LOGGER_NAME: Final[str] = "codegen_orchestrator"

_CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"run_id", "plan_id", "task_id", "wave", "agent_type"}
)
_SECRET_KEY_HINTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)
_INLINE_SECRET_RE: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"
)
_BEARER_RE: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Attributes every LogRecord carries; anything else on a record is a caller field.
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
    "correlation",
}

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how one run's log is written."""

    run_id: str
    base_log_dir: Path | str = Path(".codegen/logs")
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redact_secrets: bool = True


class _SnapshotQueueHandler(logging.handlers.QueueHandler):
    """Snapshot correlation on the emitting thread; count records a full queue rejects."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        record.correlation = get_correlation_context()
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _ShapeRecord:
    """ProcessorFormatter step turning a stdlib record into the run-log event layout."""

    def __init__(self, run_id: str) -> None:
        self._run_id = run_id

    def __call__(self, logger: object, method_name: str, event_dict: EventDict) -> EventDict:
        record: logging.LogRecord = event_dict["_record"]
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": str(event_dict.get("event", "")),
            "run_id": self._run_id,
        }
        event.update(getattr(record, "correlation", None) or {})
        for key in _CORRELATION_KEYS:
            value = getattr(record, key, None)
            if value is not None and str(value).strip():
                event[key] = str(value)
        fields = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in _CORRELATION_KEYS and key[0] != "_"
        }
        if fields:
            event["fields"] = fields
        return event


def _redact_event(logger: object, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["message"] = redact(event_dict["message"])
    if "fields" in event_dict:
        event_dict["fields"] = redact(event_dict["fields"])
    return event_dict


class StructuredLoggingHandle:
    """An active run log. ``shutdown`` drains the queue and closes the file."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        queue_handler: _SnapshotQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.logger.removeHandler(self._queue_handler)
            # stop() enqueues a sentinel and joins, so every queued record is written first.
            self._listener.stop()
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()
            self._closed = True


def setup_logging(
    source: Mapping[str, object] | object | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> StructuredLoggingHandle:
    """Start a run log from an ``[observability]`` mapping or an ``EngineSettings``."""

    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=Path(str(log_dir or _setting(source, "log_dir", ".codegen/logs"))),
            level=str(_setting(source, "log_level", "INFO")),
            log_to_stdout=bool(_setting(source, "log_to_stdout", False)),
            redact_secrets=bool(_setting(source, "redact_secrets", True)),
        )
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the queue-backed JSON sink for one run, replacing any active one."""

    global _active
    run_id = config.run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    if Path(config.log_filename).name != config.log_filename:
        raise ValueError("log_filename must not include path separators")
    level = _level_number(config.level)

    previous = get_active_logging_handle()
    if previous is not None:
        shutdown_logging(previous)

    log_path = Path(config.base_log_dir) / run_id / config.log_filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    steps: list[Any] = [_ShapeRecord(run_id)]
    if config.redact_secrets:
        steps.append(_redact_event)
    steps.append(
        structlog.processors.JSONRenderer(
            sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    )
    formatter = structlog.stdlib.ProcessorFormatter(processors=steps)

    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(config.logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _SnapshotQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)
    configure_structlog()

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
    _hook_atexit()
    return handle


def configure_structlog() -> None:
    """Hand structlog events to stdlib logging as records with keyword fields."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Close ``handle`` (default: the active run log) and restore structlog defaults."""

    global _active
    target = handle or get_active_logging_handle()
    if target is None:
        return
    target.shutdown()
    with _active_lock:
        if _active is target:
            _active = None
            structlog.reset_defaults()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | int | None) -> Iterator[None]:
    """Bind correlation fields for every record logged inside the block.

    ``None`` values are skipped. Nested scopes add to the outer ones and the
    outer values come back on exit.
    """

    tokens = structlog.contextvars.bind_contextvars(
        **{key: str(value) for key, value in fields.items() if value is not None}
    )
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def redact(value: JSONValue) -> JSONValue:
    """Mask secret-looking keys at any depth and inline ``token=...`` style values."""

    return _redact(value, None)


def _redact(value: JSONValue, key: str | None) -> JSONValue:
    if key is not None and any(hint in key.lower() for hint in _SECRET_KEY_HINTS):
        return REDACTED
    if isinstance(value, str):
        masked = _INLINE_SECRET_RE.sub(rf"\1\2{REDACTED}", value)
        return _BEARER_RE.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [_redact(item, None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, name) for name, item in value.items()}
    return value


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=str)
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    return repr(value)


def _setting(source: object, key: str, default: object) -> object:
    if isinstance(source, Mapping):
        return source.get(key, default)
    return getattr(source, key, default)


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelNamesMapping().get(level.strip().upper())
    if number is None:
        raise ValueError(f"unsupported logging level {level!r}")
    return number


def _hook_atexit() -> None:
    global _atexit_hooked
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True


__all__ = [
    "LOG_FILENAME",
    "REDACTED",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_active_logging_handle",
    "get_correlation_context",
    "redact",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
