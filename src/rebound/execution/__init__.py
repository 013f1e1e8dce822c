"""Retry execution: backoff, budgets, cancellation, events and the engine."""

from rebound.execution.backoff import BackoffPolicy, exponential_delay
from rebound.execution.budget import RetryBudget
from rebound.execution.cancellation import (
    CancellationToken,
    interruptible_sleep,
    interruptible_sleep_async,
)
from rebound.execution.decorators import retrying
from rebound.execution.engine import ExecutionEngine, ExecutionResult
from rebound.execution.events import (
    AttemptRecord,
    CallableEventSink,
    CollectingEventSink,
    EventSink,
    LoggingEventSink,
    NullEventSink,
)

__all__ = [
    "AttemptRecord",
    "BackoffPolicy",
    "CallableEventSink",
    "CancellationToken",
    "CollectingEventSink",
    "EventSink",
    "ExecutionEngine",
    "ExecutionResult",
    "LoggingEventSink",
    "NullEventSink",
    "RetryBudget",
    "exponential_delay",
    "interruptible_sleep",
    "interruptible_sleep_async",
    "retrying",
]
