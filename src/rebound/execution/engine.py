"""Execution engine: run one remote operation under a retry policy.

Each call is an explicit state machine:

    Start -> Invoking -> (success) -> Succeeded
                      -> (failure) -> Classifying
    Classifying -> (kind not retryable) -> Failed[non_retryable]
                -> BudgetCheck
    BudgetCheck -> (budget spent or next attempt past max_elapsed)
                -> Failed[retries_exhausted]
                -> Backoff
    Backoff -> (cancelled during sleep) -> Cancelled
            -> Invoking (attempt + 1)

Example usage:
    from rebound.execution.engine import ExecutionEngine

    engine = ExecutionEngine(sink=LoggingEventSink())
    result = engine.execute(lambda: client.describe_table(TableName="orders"))
    if result.succeeded:
        table = result.value
    else:
        logger.error("describe_failed", kind=result.kind, reason=result.reason)

    # Or let the terminal failure raise
    table = engine.execute(fetch_table, timeout=30.0).unwrap()

Operations signal failure by raising an exception (converted with
``Failure.from_exception``) or by returning a ``Failure``. Any other return
value is the result. The engine assumes at-least-once semantics: making
side-effecting operations idempotent is the caller's job.

Thread-safe: calls share no mutable state; each owns its RetryBudget.
"""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from rebound.core.config.execution import RetryPolicy
from rebound.core.errors.classifier import DEFAULT_CLASSIFIER, FailureClassifier
from rebound.core.errors.codes import (
    AttemptOutcome,
    ExecutionOutcome,
    FailureKind,
    TerminalReason,
)
from rebound.core.errors.exceptions import (
    ExecutionCancelledError,
    ExecutionFailedError,
    NonRetryableError,
    RetriesExhaustedError,
)
from rebound.core.errors.models import Failure
from rebound.core.logging import CallContext, get_current_context, get_logger, with_context
from rebound.execution.backoff import BackoffPolicy
from rebound.execution.budget import RetryBudget
from rebound.execution.cancellation import (
    CancellationToken,
    interruptible_sleep,
    interruptible_sleep_async,
)
from rebound.execution.events import AttemptRecord, EventSink, EventSinkLike, as_sink, emit

_logger = get_logger("engine")

T = TypeVar("T")

Clock = Callable[[], float]
Sleeper = Callable[[float, CancellationToken | None], bool]
AsyncSleeper = Callable[[float, CancellationToken | None], Awaitable[bool]]

_REASON_ERRORS: dict[TerminalReason, type[ExecutionFailedError]] = {
    TerminalReason.NON_RETRYABLE: NonRetryableError,
    TerminalReason.RETRIES_EXHAUSTED: RetriesExhaustedError,
    TerminalReason.CANCELLED: ExecutionCancelledError,
}


@dataclass(frozen=True)
class ExecutionResult(Generic[T]):
    """Terminal result of one ``execute`` call.

    Attributes:
        outcome: SUCCEEDED, FAILED or CANCELLED.
        attempts: Number of times the operation was invoked.
        elapsed: Seconds from the start of the call to its end.
        value: The operation's result when it succeeded.
        failure: The last failure (always kept, including its cause).
        kind: Classification of the last failure.
        reason: Why the call stopped without succeeding.
        operation: Name of the operation.
        call_id: Identifier shared with the call's attempt records.
    """

    outcome: ExecutionOutcome
    attempts: int
    elapsed: float
    value: T | None = None
    failure: Failure | None = None
    kind: FailureKind | None = None
    reason: TerminalReason | None = None
    operation: str = "operation"
    call_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ExecutionOutcome.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.outcome == ExecutionOutcome.FAILED

    @property
    def cancelled(self) -> bool:
        return self.outcome == ExecutionOutcome.CANCELLED

    @property
    def cause(self) -> Any:
        """Underlying cause of the last failure, if any."""
        return self.failure.cause if self.failure is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the error matching the terminal reason.

        Raises:
            NonRetryableError: The failure kind is not retryable.
            RetriesExhaustedError: The budget ran out.
            ExecutionCancelledError: The call was cancelled.
        """
        if self.succeeded:
            return self.value  # type: ignore[return-value]

        reason = self.reason or TerminalReason.NON_RETRYABLE
        error_cls = _REASON_ERRORS[reason]
        kind = self.kind.value if self.kind else "none"
        message = (
            f"{self.operation} {reason.value} after {self.attempts} attempt(s) "
            f"in {self.elapsed:.3f}s (kind={kind})"
        )
        if self.failure is not None:
            message += f": {self.failure.summary}"
        cause = self.cause if isinstance(self.cause, BaseException) else None
        raise error_cls(message, self) from cause

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for logging (the value is not included)."""
        return {
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "elapsed": round(self.elapsed, 3),
            "kind": self.kind.value if self.kind else None,
            "reason": self.reason.value if self.reason else None,
            "operation": self.operation,
            "call_id": self.call_id,
            "failure": self.failure.to_dict() if self.failure else None,
        }


def _operation_name(operation: Callable[..., Any]) -> str:
    name = getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None)
    if name is None:
        func = getattr(operation, "func", None)  # functools.partial
        name = getattr(func, "__qualname__", None)
    return name or type(operation).__name__


class _Call:
    """State of one in-flight call, shared by the sync and async loops.

    Holds the budget, the last failure and the previous delay; every
    transition that ends the call goes through ``_finish`` so exactly one
    terminal record is emitted.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        policy: RetryPolicy,
        token: CancellationToken | None,
        name: str,
    ) -> None:
        self.engine = engine
        self.policy = policy
        self.token = token
        parent = get_current_context()
        self.context = parent.as_child(name) if parent is not None else CallContext(operation=name)
        self.budget = RetryBudget.for_policy(policy, engine.clock)
        self.failure: Failure | None = None
        self.kind: FailureKind | None = None
        self.previous_delay: float | None = None

    @property
    def name(self) -> str:
        return self.context.operation

    def begin_attempt(self) -> CallContext:
        attempt = self.budget.record_attempt()
        _logger.debug("engine.attempt_started", attempt=attempt)
        return self.context.with_attempt(attempt)

    def succeed(self, value: Any) -> ExecutionResult[Any]:
        return self._finish(ExecutionOutcome.SUCCEEDED, value=value)

    def fail(self, failure: Failure) -> ExecutionResult[Any] | float:
        """Classify a failure; return the terminal result or the backoff delay."""
        classification = self.engine.classifier.explain(failure)
        self.failure = failure
        self.kind = classification.kind
        attempt = self.budget.attempts_used

        _logger.debug(
            "engine.attempt_failed",
            attempt=attempt,
            kind=self.kind.value,
            matched_by=classification.matched_by,
            failure=failure.to_dict(),
        )

        if not self.policy.is_retryable(self.kind):
            return self._finish(ExecutionOutcome.FAILED, reason=TerminalReason.NON_RETRYABLE)

        if not self.budget.allows_retry():
            return self._finish(ExecutionOutcome.FAILED, reason=TerminalReason.RETRIES_EXHAUSTED)

        delay = self.engine.backoff.next_delay(
            attempt,
            self.policy,
            retry_after=failure.retry_after,
            previous_delay=self.previous_delay,
        )
        # The next attempt would start after max_elapsed
        if not self.budget.allows_retry_after(delay):
            return self._finish(ExecutionOutcome.FAILED, reason=TerminalReason.RETRIES_EXHAUSTED)
        self.previous_delay = delay
        self._emit(AttemptOutcome.RETRYING, delay=delay)
        _logger.debug(
            "engine.retry_scheduled",
            attempt=attempt,
            kind=self.kind.value,
            delay_seconds=round(delay, 3),
            retry_after=failure.retry_after,
        )
        return delay

    def cancel(self) -> ExecutionResult[Any]:
        return self._finish(ExecutionOutcome.CANCELLED, reason=TerminalReason.CANCELLED)

    def is_cancelled(self) -> bool:
        return self.token is not None and self.token.cancelled

    def _emit(
        self,
        outcome: AttemptOutcome,
        delay: float | None = None,
        reason: TerminalReason | None = None,
    ) -> None:
        record = AttemptRecord(
            attempt=self.budget.attempts_used,
            outcome=outcome,
            kind=self.kind if outcome != AttemptOutcome.SUCCEEDED else None,
            delay=delay,
            elapsed=self.budget.elapsed(),
            error_code=self.failure.code if self.failure and outcome != AttemptOutcome.SUCCEEDED else None,
            reason=reason,
            operation=self.name,
            call_id=self.context.call_id,
        )
        emit(self.engine.sink, record)

    def _finish(
        self,
        outcome: ExecutionOutcome,
        value: Any = None,
        reason: TerminalReason | None = None,
    ) -> ExecutionResult[Any]:
        self._emit(AttemptOutcome(outcome.value), reason=reason)
        succeeded = outcome == ExecutionOutcome.SUCCEEDED
        result: ExecutionResult[Any] = ExecutionResult(
            outcome=outcome,
            attempts=self.budget.attempts_used,
            elapsed=self.budget.elapsed(),
            value=value,
            failure=self.failure,
            kind=None if succeeded else self.kind,
            reason=reason,
            operation=self.name,
            call_id=self.context.call_id,
        )
        if succeeded:
            _logger.debug("engine.call_succeeded", attempts=result.attempts)
        else:
            _logger.info(
                "engine.call_stopped",
                outcome=outcome.value,
                reason=reason.value if reason else None,
                attempts=result.attempts,
                elapsed_seconds=round(result.elapsed, 3),
                kind=self.kind.value if self.kind else None,
                cancel_reason=self.token.reason if self.token is not None else None,
            )
        return result


class ExecutionEngine:
    """Runs operations under a RetryPolicy.

    Collaborators are injectable so timing is testable without real sleeps:
    ``clock`` measures elapsed time, ``sleeper`` / ``async_sleeper``
    perform the cancellable backoff wait, ``rng`` drives jitter.

    Attributes:
        policy: Default policy for calls that do not pass one.
        classifier: Maps failures to kinds.
        sink: Receives one AttemptRecord per attempt.
        backoff: Computes delays between attempts.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        classifier: FailureClassifier | None = None,
        sink: EventSinkLike | None = None,
        *,
        backoff: BackoffPolicy | None = None,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = interruptible_sleep,
        async_sleeper: AsyncSleeper = interruptible_sleep_async,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or DEFAULT_CLASSIFIER
        self.sink: EventSink = as_sink(sink)
        self.backoff = backoff or BackoffPolicy(rng)
        self.clock = clock
        self._sleeper = sleeper
        self._async_sleeper = async_sleeper

    def _start(
        self,
        operation: Callable[[], Any],
        policy: RetryPolicy | None,
        cancel: CancellationToken | None,
        timeout: float | None,
        name: str | None,
    ) -> tuple[_Call, Callable[[], None]]:
        """Build the call state and its effective token.

        With both ``cancel`` and ``timeout`` the effective token expires at
        the earlier of the two deadlines and follows the caller's cancel().

        Returns:
            The call and a function releasing the link to the caller's token.
        """
        token = cancel
        release: Callable[[], None] = lambda: None  # noqa: E731
        if timeout is not None:
            token = CancellationToken.with_timeout(timeout, clock=self.clock)
            if cancel is not None:
                if cancel.deadline is not None and token.deadline is not None:
                    token.deadline = min(token.deadline, cancel.deadline)
                release = cancel.add_callback(token.cancel)
        call = _Call(self, policy or self.policy, token, name or _operation_name(operation))
        return call, release

    def execute(
        self,
        operation: Callable[[], T | Failure],
        policy: RetryPolicy | None = None,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
        name: str | None = None,
    ) -> ExecutionResult[T]:
        """Execute an operation, retrying per policy.

        Args:
            operation: Zero-argument callable; raises or returns a Failure
                to signal failure.
            policy: Policy for this call; defaults to the engine's policy.
            cancel: Token that aborts a pending backoff when cancelled.
            timeout: Seconds until the call counts as cancelled; combined
                with ``cancel`` when both are given.
            name: Operation name for events and logs.

        Returns:
            ExecutionResult describing success, failure or cancellation.
        """
        call, release = self._start(operation, policy, cancel, timeout, name)
        try:
            with with_context(call.context):
                if call.is_cancelled():
                    return call.cancel()
                while True:
                    with with_context(call.begin_attempt()):
                        try:
                            value = operation()
                        except Exception as exc:
                            outcome = call.fail(Failure.from_exception(exc))
                        else:
                            if not isinstance(value, Failure):
                                return call.succeed(value)
                            outcome = call.fail(value)
                    if isinstance(outcome, ExecutionResult):
                        return outcome
                    if self._sleeper(outcome, call.token) or call.is_cancelled():
                        return call.cancel()
        finally:
            release()

    async def execute_async(
        self,
        operation: Callable[[], Awaitable[T] | T | Failure],
        policy: RetryPolicy | None = None,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
        name: str | None = None,
    ) -> ExecutionResult[T]:
        """Asyncio counterpart of ``execute``.

        The operation may return an awaitable, which is awaited. Cancelling
        the surrounding task emits a CANCELLED record and re-raises
        ``asyncio.CancelledError``.
        """
        call, release = self._start(operation, policy, cancel, timeout, name)
        try:
            with with_context(call.context):
                if call.is_cancelled():
                    return call.cancel()
                while True:
                    with with_context(call.begin_attempt()):
                        try:
                            value = operation()
                            if inspect.isawaitable(value):
                                value = await value
                        except Exception as exc:
                            outcome = call.fail(Failure.from_exception(exc))
                        else:
                            if not isinstance(value, Failure):
                                return call.succeed(value)
                            outcome = call.fail(value)
                    if isinstance(outcome, ExecutionResult):
                        return outcome
                    if await self._async_sleeper(outcome, call.token) or call.is_cancelled():
                        return call.cancel()
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            release()


__all__ = [
    "AsyncSleeper",
    "Clock",
    "ExecutionEngine",
    "ExecutionResult",
    "Sleeper",
]
