"""Failure kinds, terminal reasons and execution outcomes.

Contains the closed enumerations shared by the classifier, the engine and the
event sinks.

Failure Kind Taxonomy
=====================

Every failure maps to exactly one kind. The kind alone decides whether the
engine is allowed to retry, so the taxonomy is intentionally small:

    | Kind              | Retried by default | Typical cause                         |
    |-------------------|--------------------|---------------------------------------|
    | TRANSIENT         | Yes                | 5xx, InternalError, ServiceUnavailable |
    | THROTTLING        | Yes                | 429, ThrottlingException, quota       |
    | RESOURCE_CONFLICT | No                 | 409, ResourceInUse, ConcurrentModify  |
    | NOT_FOUND         | No                 | 404, ResourceNotFound, NoSuchKey      |
    | INVALID_INPUT     | No                 | 400, ValidationException              |
    | PERMISSION_DENIED | No                 | 401/403, AccessDenied                 |
    | FATAL             | No                 | Anything unrecognized                 |

FATAL is the fail-closed fallback: unknown errors are never retried unless a
caller explicitly opts in through ``RetryPolicy.retryable_kinds``.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """High-level failure kinds that drive retry decisions."""

    TRANSIENT = "transient"
    """Temporary server-side failure; the same request may succeed later."""

    THROTTLING = "throttling"
    """Request rate or quota exceeded; back off before trying again."""

    RESOURCE_CONFLICT = "resource_conflict"
    """Concurrent state change on the target (in use, being modified, exists)."""

    NOT_FOUND = "not_found"
    """The target object does not exist."""

    INVALID_INPUT = "invalid_input"
    """Malformed request, failed validation or missing required field."""

    PERMISSION_DENIED = "permission_denied"
    """Caller is not authorized for the operation."""

    FATAL = "fatal"
    """Unrecognized failure - never retried by default."""


DEFAULT_RETRYABLE_KINDS: frozenset[FailureKind] = frozenset({
    FailureKind.TRANSIENT,
    FailureKind.THROTTLING,
})
"""Kinds retried when a policy does not say otherwise."""


class JitterMode(str, Enum):
    """Randomization applied to computed backoff delays."""

    NONE = "none"
    """Return the capped exponential delay unchanged (deterministic)."""

    FULL = "full"
    """Uniform value in ``[0, capped_delay]``."""

    DECORRELATED = "decorrelated"
    """``min(max_delay, uniform(base, previous_delay * 3))``."""


class ExecutionOutcome(str, Enum):
    """Terminal state of one ``ExecutionEngine.execute`` call."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AttemptOutcome(str, Enum):
    """What happened after a single attempt.

    RETRYING is emitted for every attempt that is followed by a backoff;
    the remaining values mark the final record of a call.
    """

    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TerminalReason(str, Enum):
    """Why a call stopped without succeeding.

    Lets callers log or alert differently on "the remote said no" versus
    "we ran out of budget".
    """

    NON_RETRYABLE = "non_retryable"
    """The failure kind is not in the policy's retryable kinds."""

    RETRIES_EXHAUSTED = "retries_exhausted"
    """The kind was retryable but the attempt or time budget ran out."""

    CANCELLED = "cancelled"
    """The caller cancelled or the caller's deadline passed."""
