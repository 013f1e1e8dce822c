"""Exception hierarchy for rebound.

All library exceptions inherit from ReboundError, enabling callers to catch
broad (ReboundError) or narrow (e.g., RetriesExhaustedError). The engine
itself never raises these for operation failures; they come from
``ExecutionResult.unwrap()`` and from settings loading.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rebound.execution.engine import ExecutionResult


class ReboundError(Exception):
    """Base exception for all rebound errors."""


class PolicyError(ReboundError):
    """Raised when settings cannot be loaded or fail validation.

    Examples: unreadable YAML file, unknown failure kind in a code table,
    ``multiplier <= 1``.
    """


class ExecutionFailedError(ReboundError):
    """Raised by ``unwrap()`` when a call ended without a result.

    The full terminal result (kind, attempts, elapsed, failure) is available
    as ``result``; the original cause is chained as ``__cause__``.
    """

    def __init__(self, message: str, result: ExecutionResult) -> None:
        super().__init__(message)
        self.result = result


class NonRetryableError(ExecutionFailedError):
    """The failure was classified as a kind the policy does not retry."""


class RetriesExhaustedError(ExecutionFailedError):
    """The failure was retryable but the attempt or time budget ran out."""


class ExecutionCancelledError(ExecutionFailedError):
    """The caller cancelled the call or its deadline passed."""
