"""Attempt events and the sinks that receive them.

The engine emits one AttemptRecord per attempt: a RETRYING record for every
attempt followed by a backoff, then one terminal record (SUCCEEDED, FAILED or
CANCELLED) summarizing the call. Sinks are supplied by the caller; the
library ships a structured-logging sink and an in-memory collecting sink.

Sink errors never influence retry decisions: they are logged and swallowed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Protocol, runtime_checkable

from rebound.core.errors.codes import AttemptOutcome, FailureKind, TerminalReason
from rebound.core.logging import get_logger

_logger = get_logger("events")


@dataclass(frozen=True)
class AttemptRecord:
    """Record of a single attempt, passed to the sink and then discarded.

    Attributes:
        attempt: 1-based attempt index (0 when cancelled before any attempt).
        outcome: What happened after this attempt.
        kind: Failure kind, or None for a successful attempt.
        delay: Backoff chosen before the next attempt; None when terminal.
        elapsed: Seconds since the call started.
        error_code: Service error code of the failure, if any.
        reason: Terminal reason for FAILED / CANCELLED records.
        operation: Name of the operation being executed.
        call_id: Identifier shared by all records of one call.
        timestamp: When the record was created (UTC).
    """

    attempt: int
    outcome: AttemptOutcome
    kind: FailureKind | None = None
    delay: float | None = None
    elapsed: float = 0.0
    error_code: str | None = None
    reason: TerminalReason | None = None
    operation: str = "operation"
    call_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        """True for the final record of a call."""
        return self.outcome != AttemptOutcome.RETRYING

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for logging/serialization."""
        return {
            "attempt": self.attempt,
            "outcome": self.outcome.value,
            "kind": self.kind.value if self.kind else None,
            "delay": round(self.delay, 3) if self.delay is not None else None,
            "elapsed": round(self.elapsed, 3),
            "error_code": self.error_code,
            "reason": self.reason.value if self.reason else None,
            "operation": self.operation,
            "call_id": self.call_id,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class EventSink(Protocol):
    """Receives attempt records.

    Implementations shared between concurrent calls must tolerate
    concurrent invocation; the engine does not serialize calls to a sink.
    """

    def on_attempt(self, record: AttemptRecord) -> None: ...


EventSinkLike = EventSink | Callable[[AttemptRecord], None]


class NullEventSink:
    """Discards every record."""

    def on_attempt(self, record: AttemptRecord) -> None:
        return None


class CallableEventSink:
    """Adapts a plain ``callable(record)`` to the EventSink protocol."""

    def __init__(self, callback: Callable[[AttemptRecord], None]) -> None:
        self._callback = callback

    def on_attempt(self, record: AttemptRecord) -> None:
        self._callback(record)


class CollectingEventSink:
    """Keeps every record in memory, in emission order.

    Thread-safe: appends and reads are protected by a lock.
    """

    def __init__(self) -> None:
        self._records: list[AttemptRecord] = []
        self._lock = Lock()

    def on_attempt(self, record: AttemptRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[AttemptRecord]:
        """Snapshot of the records collected so far."""
        with self._lock:
            return list(self._records)

    def for_call(self, call_id: str) -> list[AttemptRecord]:
        """Records belonging to one call."""
        return [r for r in self.records if r.call_id == call_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class LoggingEventSink:
    """Writes each record as a structured log event.

    Retries are logged at INFO, terminal failures at WARNING, everything
    else at DEBUG.
    """

    def __init__(self, component: str = "attempts") -> None:
        self._logger = get_logger(component)

    def on_attempt(self, record: AttemptRecord) -> None:
        payload = record.to_dict()
        payload.pop("timestamp")
        if record.outcome == AttemptOutcome.RETRYING:
            self._logger.info("attempt.retrying", **payload)
        elif record.outcome == AttemptOutcome.FAILED:
            self._logger.warning("attempt.failed", **payload)
        elif record.outcome == AttemptOutcome.CANCELLED:
            self._logger.info("attempt.cancelled", **payload)
        else:
            self._logger.debug("attempt.succeeded", **payload)


def as_sink(sink: EventSinkLike | None) -> EventSink:
    """Normalize None, an EventSink or a plain callable into an EventSink.

    Raises:
        TypeError: If ``sink`` is neither.
    """
    if sink is None:
        return NullEventSink()
    if isinstance(sink, EventSink):
        return sink
    if callable(sink):
        return CallableEventSink(sink)
    raise TypeError(f"event sink must provide on_attempt() or be callable, got {type(sink).__name__}")


def emit(sink: EventSink, record: AttemptRecord) -> None:
    """Deliver a record, logging and swallowing any sink error."""
    try:
        sink.on_attempt(record)
    except Exception as exc:
        _logger.warning(
            "events.sink_failed",
            sink=type(sink).__name__,
            attempt=record.attempt,
            outcome=record.outcome.value,
            error=str(exc),
            error_type=type(exc).__name__,
        )
