"""Structured logging for vidqueue.

structlog renders every entry; stdlib ``logging`` handlers decide where it goes
(stderr, stdout or a rotating file). Components log dotted snake_case events
with key/value pairs:

    from vidqueue.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG")
    logger = get_logger("queue.scheduler")
    logger.info("scheduler.job_dispatched", job_id="job-1", active=2)

Anything logged while a ``JobContext`` is active (each executor task runs
inside one) carries that job's id and model:

    with with_context(JobContext(job_id="job-1", model="veo-2.0-generate-001")):
        logger.debug("gemini.polled", attempt=3)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]

# Key fragments whose values are replaced before rendering
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "api-key",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})

_REDACTED = "[REDACTED]"

_log_file: Path | None = None


def get_current_log_path() -> Path | None:
    """The rotating log file in use, or None when logging only to streams."""
    return _log_file


# ─── Job context ───────────────────────────────────────────────────


@dataclass(frozen=True)
class JobContext:
    """Which job an entry belongs to."""

    job_id: str
    component: str = "unknown"
    model: str | None = None

    def with_component(self, component: str) -> JobContext:
        return replace(self, component=component)

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


_job_context: ContextVar[JobContext | None] = ContextVar("vidqueue_job_context", default=None)


def get_current_context() -> JobContext | None:
    return _job_context.get()


@contextmanager
def with_context(ctx: JobContext) -> Iterator[JobContext]:
    """Attach ``ctx`` to every entry logged in this block (and this task).

    Fields passed explicitly to a log call win over context fields.
    """
    token = _job_context.set(ctx)
    try:
        yield ctx
    finally:
        _job_context.reset(token)


# ─── Processors ────────────────────────────────────────────────────


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_PATTERNS)


def _redact(key: str, value: Any) -> Any:
    if _is_sensitive(key):
        return _REDACTED
    if isinstance(value, dict):
        return {k: _REDACTED if _is_sensitive(str(k)) else v for k, v in value.items()}
    return value


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Mask values whose key looks like a credential (top level and one dict deep)."""
    return {key: _redact(key, value) for key, value in event_dict.items()}


def stamp_utc(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def merge_job_context(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    ctx = _job_context.get()
    if ctx is None:
        return event_dict
    for key, value in ctx.to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


def _processor_chain(
    *,
    timestamps: bool,
    job_context: bool,
) -> list[Processor]:
    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        redact_secrets,
    ]
    if job_context:
        chain.append(merge_job_context)
    if timestamps:
        chain.append(stamp_utc)
    chain += [
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    return chain


# ─── Component loggers ─────────────────────────────────────────────


class QueueLogger:
    """A structlog logger bound to one component.

    structlog is looked up on every call, so module-level loggers pick up a
    ``configure_logging`` that runs after import.
    """

    def __init__(self, component: str, /, **bound: Any) -> None:
        self.component = component
        self._bound: dict[str, Any] = {**bound, "component": component}

    def bind(self, **fields: Any) -> QueueLogger:
        """New logger carrying extra fields. The component cannot be rebound."""
        return QueueLogger(self.component, **{**self._bound, **fields})

    def _emit(self, method: str, event: str, fields: dict[str, Any]) -> None:
        logger = structlog.get_logger().bind(**self._bound)
        getattr(logger, method)(event, **fields)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit("debug", event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit("info", event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit("warning", event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit("error", event, fields)

    def exception(self, event: str, **fields: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._emit("exception", event, fields)


def get_logger(component: str, /, **bound: Any) -> QueueLogger:
    """Logger for a component such as ``"queue.store"`` or ``"backend.gemini"``."""
    return QueueLogger(component, **bound)


# ─── Setup ─────────────────────────────────────────────────────────


def _formatter(renderer: Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
    handler.setLevel(level)
    return handler


def _json_handler(level: int, path: Path | None, max_bytes: int, backups: int) -> logging.Handler:
    handler: logging.Handler
    if path is None:
        handler = logging.StreamHandler(sys.stdout)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8",
        )
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handler.setLevel(level)
    return handler


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Route vidqueue logging. Call once, before jobs start.

    Formats:
        console: human-readable lines on stderr, plus JSON lines in
            ``file_path`` when one is given.
        json: JSON lines to ``file_path``, or to stdout without one.
        both: console on stderr plus JSON lines in ``file_path``.

    Raises:
        ValueError: If ``format="both"`` is requested without ``file_path``.
    """
    global _log_file

    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")
    if format == "console" and file_path is not None:
        format = "both"
    _log_file = None

    numeric_level: int = getattr(logging, level)
    handlers: list[logging.Handler] = []
    if format != "json":
        handlers.append(_console_handler(numeric_level))
    if format != "console":
        handlers.append(_json_handler(
            numeric_level, file_path, max_file_size_mb * 1024 * 1024, backup_count,
        ))
        if file_path is not None:
            _log_file = file_path

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(numeric_level)

    structlog.configure(
        processors=_processor_chain(
            timestamps=include_timestamps, job_context=include_context,
        ),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "JobContext",
    "QueueLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_current_log_path",
    "get_logger",
    "with_context",
]
