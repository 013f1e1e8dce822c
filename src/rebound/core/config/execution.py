"""Retry policy configuration model.

Defines the immutable RetryPolicy value object and its fluent builder.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rebound.core.constants import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY_SECONDS,
    DEFAULT_MAX_ELAPSED_SECONDS,
    DEFAULT_MULTIPLIER,
)
from rebound.core.errors.codes import DEFAULT_RETRYABLE_KINDS, FailureKind, JitterMode


class RetryPolicy(BaseModel):
    """Immutable configuration for one family of remote calls.

    All durations are in seconds. Attempt 1 is always the initial try, so
    ``max_attempts=1`` means "never retry".

    Numeric fields are strict: ``"3"`` or ``3.0`` for ``max_attempts`` is
    rejected rather than coerced.

    Example:
        policy = RetryPolicy(max_attempts=5, jitter_mode=JitterMode.DECORRELATED)
        policy = RetryPolicy.builder().max_attempts(5).retry_on(FailureKind.RESOURCE_CONFLICT).build()
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        strict=True,
        description="Total attempts including the initial try",
    )
    max_elapsed: float = Field(
        default=DEFAULT_MAX_ELAPSED_SECONDS,
        ge=0,
        strict=True,
        allow_inf_nan=False,
        description="Upper bound on the whole retry loop (0 = unbounded)",
    )
    base_delay: float = Field(
        default=DEFAULT_BASE_DELAY_SECONDS,
        ge=0,
        strict=True,
        allow_inf_nan=False,
        description="Delay before the first retry",
    )
    max_delay: float = Field(
        default=DEFAULT_MAX_DELAY_SECONDS,
        ge=0,
        strict=True,
        allow_inf_nan=False,
        description="Cap applied to every computed delay",
    )
    multiplier: float = Field(
        default=DEFAULT_MULTIPLIER,
        gt=1,
        strict=True,
        allow_inf_nan=False,
        description="Exponential backoff multiplier",
    )
    jitter_mode: JitterMode = Field(
        default=JitterMode.FULL,
        description="Randomization applied to delays: none, full or decorrelated",
    )
    retryable_kinds: frozenset[FailureKind] = Field(
        default=DEFAULT_RETRYABLE_KINDS,
        description="Failure kinds the engine is allowed to retry",
    )

    @model_validator(mode="after")
    def _validate_delay_range(self) -> RetryPolicy:
        if self.base_delay > self.max_delay:
            raise ValueError(
                f"base_delay ({self.base_delay}) must not exceed "
                f"max_delay ({self.max_delay})"
            )
        return self

    def is_retryable(self, kind: FailureKind) -> bool:
        """Whether failures of this kind may be retried under this policy."""
        return kind in self.retryable_kinds

    def with_overrides(self, **changes: Any) -> RetryPolicy:
        """Return a validated copy with the given fields replaced."""
        return type(self).model_validate({**self.model_dump(), **changes})

    @classmethod
    def builder(cls) -> RetryPolicyBuilder:
        """Start a fluent builder seeded with the documented defaults."""
        return RetryPolicyBuilder()

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-friendly dictionary for logging."""
        return {
            "max_attempts": self.max_attempts,
            "max_elapsed": self.max_elapsed,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "multiplier": self.multiplier,
            "jitter_mode": self.jitter_mode.value,
            "retryable_kinds": sorted(k.value for k in self.retryable_kinds),
        }


class RetryPolicyBuilder:
    """Fluent builder for RetryPolicy.

    Values are validated once, in ``build()``.
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def max_attempts(self, value: int) -> RetryPolicyBuilder:
        self._fields["max_attempts"] = value
        return self

    def max_elapsed(self, seconds: float) -> RetryPolicyBuilder:
        self._fields["max_elapsed"] = seconds
        return self

    def base_delay(self, seconds: float) -> RetryPolicyBuilder:
        self._fields["base_delay"] = seconds
        return self

    def max_delay(self, seconds: float) -> RetryPolicyBuilder:
        self._fields["max_delay"] = seconds
        return self

    def multiplier(self, value: float) -> RetryPolicyBuilder:
        self._fields["multiplier"] = value
        return self

    def jitter(self, mode: JitterMode) -> RetryPolicyBuilder:
        self._fields["jitter_mode"] = mode
        return self

    def retryable_kinds(self, kinds: Iterable[FailureKind]) -> RetryPolicyBuilder:
        """Replace the retryable kinds."""
        self._fields["retryable_kinds"] = frozenset(kinds)
        return self

    def retry_on(self, *kinds: FailureKind) -> RetryPolicyBuilder:
        """Add kinds to the current retryable set."""
        current = self._fields.get("retryable_kinds", DEFAULT_RETRYABLE_KINDS)
        self._fields["retryable_kinds"] = frozenset(current) | frozenset(kinds)
        return self

    def build(self) -> RetryPolicy:
        """Validate and return the policy.

        Raises:
            pydantic.ValidationError: If any value is out of range.
        """
        return RetryPolicy(**self._fields)
