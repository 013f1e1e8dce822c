"""Rebound - classified retries for remote calls.

Runs a remote operation under a retry policy: failures are classified into
a small taxonomy, retryable ones are retried with capped, jittered
exponential backoff within an attempt/time budget, and every attempt is
reported to an event sink.
"""

from rebound.core.config import EngineSettings, LogConfig, RetryPolicy
from rebound.core.errors import (
    ExecutionCancelledError,
    ExecutionFailedError,
    Failure,
    FailureClassifier,
    FailureKind,
    JitterMode,
    NonRetryableError,
    PolicyError,
    ReboundError,
    RetriesExhaustedError,
)
from rebound.core.logging import configure_logging, get_logger
from rebound.execution import (
    AttemptRecord,
    BackoffPolicy,
    CancellationToken,
    CollectingEventSink,
    EventSink,
    ExecutionEngine,
    ExecutionResult,
    LoggingEventSink,
    RetryBudget,
    retrying,
)

__version__ = "0.1.0"

__all__ = [
    "AttemptRecord",
    "BackoffPolicy",
    "CancellationToken",
    "CollectingEventSink",
    "EngineSettings",
    "EventSink",
    "ExecutionCancelledError",
    "ExecutionEngine",
    "ExecutionFailedError",
    "ExecutionResult",
    "Failure",
    "FailureClassifier",
    "FailureKind",
    "JitterMode",
    "LogConfig",
    "NonRetryableError",
    "PolicyError",
    "ReboundError",
    "RetriesExhaustedError",
    "RetryBudget",
    "RetryPolicy",
    "__version__",
    "configure_logging",
    "get_logger",
    "retrying",
]
