"""Pytest fixtures for rebound tests."""

from __future__ import annotations

import logging
import random
from collections.abc import Generator

import pytest
import structlog

from rebound.core.config import RetryPolicy
from rebound.core.errors import JitterMode
from rebound.execution.cancellation import CancellationToken
from rebound.execution.engine import ExecutionEngine
from rebound.execution.events import CollectingEventSink


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleeper:
    """Records requested delays and advances the fake clock instead of sleeping.

    ``on_sleep`` runs before the clock moves, which lets tests cancel the
    token "during" a backoff.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []
        self.on_sleep = None

    def __call__(self, seconds: float, token: CancellationToken | None) -> bool:
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(seconds, token)
        if token is not None and token.cancelled:
            return True
        remaining = token.remaining() if token is not None else None
        if remaining is not None and remaining <= seconds:
            self.clock.advance(remaining)
            return True
        self.clock.advance(seconds)
        return False


class FakeAsyncSleeper(FakeSleeper):
    """Async variant of FakeSleeper."""

    async def __call__(self, seconds: float, token: CancellationToken | None) -> bool:  # type: ignore[override]
        return FakeSleeper.__call__(self, seconds, token)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper(clock: FakeClock) -> FakeSleeper:
    return FakeSleeper(clock)


@pytest.fixture
def async_sleeper(clock: FakeClock) -> FakeAsyncSleeper:
    return FakeAsyncSleeper(clock)


@pytest.fixture
def sink() -> CollectingEventSink:
    return CollectingEventSink()


@pytest.fixture
def no_jitter_policy() -> RetryPolicy:
    """Deterministic policy: 0.1, 0.2, 0.4, ... capped at 20s."""
    return RetryPolicy(max_attempts=4, jitter_mode=JitterMode.NONE)


@pytest.fixture
def engine(
    clock: FakeClock,
    sleeper: FakeSleeper,
    async_sleeper: FakeAsyncSleeper,
    sink: CollectingEventSink,
    no_jitter_policy: RetryPolicy,
) -> ExecutionEngine:
    """Engine wired to the fake clock, fake sleepers and a collecting sink."""
    return ExecutionEngine(
        policy=no_jitter_policy,
        sink=sink,
        clock=clock,
        sleeper=sleeper,
        async_sleeper=async_sleeper,
        rng=random.Random(42),
    )
