"""Backoff delay computation.

Computes how long to wait before the Nth retry:

- A server-provided retry-after hint wins when it fits under ``max_delay``
- Otherwise ``base_delay * multiplier ** (n - 1)``, capped at ``max_delay``
- Jitter is then applied according to the policy's ``jitter_mode``

Example usage:
    from rebound.execution.backoff import BackoffPolicy

    backoff = BackoffPolicy()
    delay = backoff.next_delay(1, policy)                   # first retry
    delay = backoff.next_delay(3, policy, retry_after=2.0)  # honour server hint

The policy is stateless apart from its random generator. Decorrelated
jitter needs the previous delay, which the caller (the engine) tracks and
passes back in.
"""

from __future__ import annotations

import random

from rebound.core.config.execution import RetryPolicy
from rebound.core.constants import DECORRELATED_JITTER_FACTOR
from rebound.core.errors.codes import JitterMode


def exponential_delay(attempt_index: int, policy: RetryPolicy) -> float:
    """Capped exponential delay for the given retry, without jitter.

    Args:
        attempt_index: 1-based retry number.
        policy: Policy supplying base, multiplier and cap.

    Returns:
        ``min(max_delay, base_delay * multiplier ** (attempt_index - 1))``.

    Raises:
        ValueError: If attempt_index < 1.
    """
    if attempt_index < 1:
        raise ValueError(f"attempt_index must be >= 1, got {attempt_index}")
    if policy.base_delay == 0:
        return 0.0
    try:
        raw = policy.base_delay * (policy.multiplier ** (attempt_index - 1))
    except OverflowError:
        return policy.max_delay
    return min(raw, policy.max_delay)


class BackoffPolicy:
    """Computes retry delays for a RetryPolicy.

    Thread-safe as long as the injected ``random.Random`` is not shared with
    code that reseeds it concurrently; the module-level generator used by
    default is safe for concurrent use.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        """Initialize the backoff policy.

        Args:
            rng: Random generator used for jitter. Inject a seeded
                ``random.Random`` for reproducible delays in tests.
        """
        self._rng = rng or random.Random()

    def next_delay(
        self,
        attempt_index: int,
        policy: RetryPolicy,
        retry_after: float | None = None,
        previous_delay: float | None = None,
    ) -> float:
        """Compute the delay before the next attempt.

        Args:
            attempt_index: 1-based retry number (1 = delay before the 2nd try).
            policy: The retry policy in effect.
            retry_after: Server-suggested wait; used as-is when it does not
                exceed ``max_delay``.
            previous_delay: Delay chosen before the previous retry, used by
                decorrelated jitter. Defaults to ``base_delay``.

        Returns:
            Delay in seconds, in ``[0, max_delay]``.

        Raises:
            ValueError: If attempt_index < 1.
        """
        capped = exponential_delay(attempt_index, policy)

        if retry_after is not None and 0 <= retry_after <= policy.max_delay:
            return float(retry_after)

        mode = policy.jitter_mode
        if mode == JitterMode.NONE:
            return capped
        if mode == JitterMode.FULL:
            return min(self._rng.uniform(0.0, capped), capped)
        return self._decorrelated(policy, previous_delay)

    def _decorrelated(self, policy: RetryPolicy, previous_delay: float | None) -> float:
        previous = policy.base_delay if previous_delay is None else max(previous_delay, 0.0)
        upper = max(policy.base_delay, previous * DECORRELATED_JITTER_FACTOR)
        delay = self._rng.uniform(policy.base_delay, upper)
        return max(0.0, min(policy.max_delay, delay))
