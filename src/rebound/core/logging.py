"""Structured logging infrastructure for rebound.

Provides structured logging using structlog with call-level context such as
call_id, operation name and attempt number. Supports console and JSON output,
optionally to a rotating file.

Example usage:
    from rebound.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("engine")

    # Log with auto-context
    logger.info("engine.call_started", operation="describe_table")

    # Use call context for automatic correlation
    from rebound.core.logging import CallContext, with_context

    ctx = CallContext(operation="describe_table")
    with with_context(ctx):
        logger.info("engine.attempt_failed")  # Includes call_id, operation
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns that should never be logged
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "access_key",
    "secret",
    "session_token",
    "token",
    "password",
    "credential",
    "authorization",
    "signature",
})


@dataclass(frozen=True)
class CallContext:
    """Immutable context for correlating log entries across one call.

    Attributes:
        call_id: Unique identifier of one ``execute`` invocation.
        operation: Caller-facing name of the operation being retried.
        attempt: Current attempt number (None outside the attempt loop).
        parent_call_id: Call that started this one, for nested executions.
    """

    call_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    operation: str = "operation"
    attempt: int | None = None
    parent_call_id: str | None = None

    def with_attempt(self, attempt: int) -> CallContext:
        """Create a new context with the specified attempt number."""
        return replace(self, attempt=attempt)

    def as_child(self, operation: str | None = None) -> CallContext:
        """Create a child context whose parent is this call."""
        return CallContext(
            operation=operation or self.operation,
            parent_call_id=self.call_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging (None values omitted)."""
        result: dict[str, Any] = {
            "call_id": self.call_id,
            "operation": self.operation,
        }
        if self.attempt is not None:
            result["attempt"] = self.attempt
        if self.parent_call_id is not None:
            result["parent_call_id"] = self.parent_call_id
        return result


# ContextVar keeps concurrent calls (threads or tasks) isolated from each other
_current_context: ContextVar[CallContext | None] = ContextVar(
    "rebound_context", default=None
)


def get_current_context() -> CallContext | None:
    """Get the current CallContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: CallContext) -> Iterator[CallContext]:
    """Context manager that sets CallContext for the duration of a block.

    All log calls within the block include the context fields when the
    context processor is active.

    Args:
        ctx: The CallContext to use for the block.

    Yields:
        The CallContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    """Return "[REDACTED]" for values whose key looks sensitive."""
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that sanitizes sensitive fields.

    Nested dicts (one level) are sanitized too, which covers failure
    payloads logged via ``Failure.to_dict()``.
    """
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {
                k: _sanitize_value(k, v) for k, v in value.items()
            }
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds CallContext fields to log entries.

    Fields already present in the event dict win over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


class ReboundLogger:
    """Component logger wrapper around structlog.

    The underlying structlog logger is fetched lazily on every call so that
    loggers created at module import time still respect configuration set
    later via configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self.component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _log(self, method: str, event: str, kw: dict[str, Any]) -> None:
        logger = structlog.get_logger().bind(**self._context)
        getattr(logger, method)(event, **kw)

    def debug(self, event: str, **kw: Any) -> None:
        self._log("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._log("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._log("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._log("error", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self._log("exception", event, kw)


def _get_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]

    if include_context:
        processors.append(_add_context)

    if include_timestamps:
        processors.append(_add_timestamp)

    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 50,
    backup_count: int = 5,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure rebound structured logging.

    Libraries should normally leave this to the application; it is provided
    for applications and tests that want rebound's events rendered.

    Args:
        level: Minimum log level to capture.
        format: "json" for structured lines, "console" for human-readable.
        file_path: Optional file to write to (rotated); stderr otherwise.
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to include ISO8601 timestamps.
        include_context: Whether to include CallContext fields when active.
    """
    log_level = getattr(logging, level)

    handler: logging.Handler
    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=file_path is None)

    # cache_logger_on_first_use=False so module-level loggers pick up
    # configuration applied after import
    structlog.configure(
        processors=_get_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> ReboundLogger:
    """Get a rebound logger for a component.

    Args:
        component: The component name (e.g., "engine", "classifier").
        **initial_context: Additional context to bind.

    Returns:
        A ReboundLogger instance bound to the component.
    """
    return ReboundLogger(component, **initial_context)


__all__ = [
    "CallContext",
    "ReboundLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
