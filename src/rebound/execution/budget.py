"""Retry budget: attempts used and time spent by one call."""

from __future__ import annotations

import time
from collections.abc import Callable

from rebound.core.config.execution import RetryPolicy


class RetryBudget:
    """Tracks attempts and elapsed time for a single engine invocation.

    Owned exclusively by one ``execute`` call and mutated only by its loop;
    never shared between concurrent calls.

    Attributes:
        max_attempts: Total attempts allowed, initial try included.
        max_elapsed: Upper bound on elapsed seconds (0 = unbounded).
        attempts_used: Attempts started so far.
    """

    def __init__(
        self,
        max_attempts: int,
        max_elapsed: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_elapsed < 0:
            raise ValueError("max_elapsed must be >= 0")

        self.max_attempts = max_attempts
        self.max_elapsed = max_elapsed
        self.attempts_used = 0
        self._clock = clock
        self._started_at = clock()

    @classmethod
    def for_policy(
        cls,
        policy: RetryPolicy,
        clock: Callable[[], float] = time.monotonic,
    ) -> RetryBudget:
        """Create a fresh budget from a policy's limits."""
        return cls(policy.max_attempts, policy.max_elapsed, clock)

    def can_retry(self, attempts_used: int, elapsed: float) -> bool:
        """Whether another attempt is allowed given the inputs.

        Pure given its arguments: false once ``attempts_used >= max_attempts``
        or, when bounded, ``elapsed >= max_elapsed``.
        """
        if attempts_used >= self.max_attempts:
            return False
        if self.max_elapsed > 0 and elapsed >= self.max_elapsed:
            return False
        return True

    def record_attempt(self) -> int:
        """Count a new attempt and return its 1-based index."""
        self.attempts_used += 1
        return self.attempts_used

    def elapsed(self) -> float:
        """Seconds since the budget was created."""
        return max(0.0, self._clock() - self._started_at)

    def allows_retry(self) -> bool:
        """``can_retry`` evaluated against this budget's own state."""
        return self.can_retry(self.attempts_used, self.elapsed())

    def allows_retry_after(self, delay: float) -> bool:
        """Whether an attempt started ``delay`` seconds from now still fits."""
        return self.can_retry(self.attempts_used, self.elapsed() + delay)

    def exhausted(self) -> bool:
        return not self.allows_retry()
