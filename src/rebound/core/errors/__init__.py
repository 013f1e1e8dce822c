"""Failure model, classification and exception hierarchy.

Re-exports all public symbols.
"""

from rebound.core.errors.codes import (
    DEFAULT_RETRYABLE_KINDS,
    AttemptOutcome,
    ExecutionOutcome,
    FailureKind,
    JitterMode,
    TerminalReason,
)
from rebound.core.errors.models import Failure
from rebound.core.errors.exceptions import (
    ExecutionCancelledError,
    ExecutionFailedError,
    NonRetryableError,
    PolicyError,
    ReboundError,
    RetriesExhaustedError,
)
from rebound.core.errors.classifier import (
    DEFAULT_CLASSIFIER,
    Classification,
    FailureClassifier,
    classify,
)

__all__ = [
    "DEFAULT_RETRYABLE_KINDS",
    "AttemptOutcome",
    "ExecutionOutcome",
    "FailureKind",
    "JitterMode",
    "TerminalReason",
    "Failure",
    "ExecutionCancelledError",
    "ExecutionFailedError",
    "NonRetryableError",
    "PolicyError",
    "ReboundError",
    "RetriesExhaustedError",
    "DEFAULT_CLASSIFIER",
    "Classification",
    "FailureClassifier",
    "classify",
]
