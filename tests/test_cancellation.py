"""Tests for CancellationToken and the interruptible sleepers."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from rebound.execution.cancellation import (
    CancellationToken,
    interruptible_sleep,
    interruptible_sleep_async,
)

from tests.conftest import FakeClock


class TestCancellationToken:
    """Tests for the token state machine."""

    def test_initial_state(self) -> None:
        """Test a fresh token is not cancelled."""
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None
        assert token.remaining() is None

    def test_cancel(self) -> None:
        """Test cancel() sets the flag and reason."""
        token = CancellationToken()
        token.cancel("shutdown")
        assert token.cancelled is True
        assert token.reason == "shutdown"

    def test_cancel_is_idempotent(self) -> None:
        """Test the first reason sticks and callbacks run once."""
        token = CancellationToken()
        calls: list[int] = []
        token.add_callback(lambda: calls.append(1))

        token.cancel("first")
        token.cancel("second")

        assert token.reason == "first"
        assert calls == [1]

    def test_deadline(self) -> None:
        """Test a token cancels itself once its deadline passes."""
        clock = FakeClock()
        token = CancellationToken.with_timeout(5.0, clock=clock)

        assert token.remaining() == pytest.approx(5.0)
        clock.advance(4.0)
        assert token.cancelled is False
        clock.advance(1.0)
        assert token.cancelled is True
        assert token.reason == "deadline_exceeded"
        assert token.remaining() == 0.0

    def test_negative_timeout_rejected(self) -> None:
        """Test with_timeout validates its argument."""
        with pytest.raises(ValueError, match="timeout"):
            CancellationToken.with_timeout(-1.0)

    def test_callback_runs_immediately_when_already_cancelled(self) -> None:
        """Test late registration still fires."""
        token = CancellationToken()
        token.cancel()
        calls: list[str] = []
        token.add_callback(lambda: calls.append("late"))
        assert calls == ["late"]

    def test_remove_callback(self) -> None:
        """Test the returned remover unregisters the callback."""
        token = CancellationToken()
        calls: list[int] = []
        remove = token.add_callback(lambda: calls.append(1))
        remove()
        remove()  # second removal is a no-op
        token.cancel()
        assert calls == []

    def test_failing_callback_does_not_block_others(self) -> None:
        """Test a raising callback is logged and the rest still run."""
        token = CancellationToken()
        calls: list[str] = []

        def boom() -> None:
            raise RuntimeError("callback failed")

        token.add_callback(boom)
        token.add_callback(lambda: calls.append("second"))
        token.cancel()

        assert calls == ["second"]


class TestInterruptibleSleep:
    """Tests for the synchronous sleeper."""

    def test_sleep_without_token(self) -> None:
        """Test a plain sleep reports no cancellation."""
        assert interruptible_sleep(0.0, None) is False

    def test_already_cancelled(self) -> None:
        """Test a cancelled token returns immediately."""
        token = CancellationToken()
        token.cancel()
        start = time.monotonic()
        assert interruptible_sleep(10.0, token) is True
        assert time.monotonic() - start < 1.0

    def test_full_delay_elapses(self) -> None:
        """Test an uncancelled short sleep returns False."""
        assert interruptible_sleep(0.01, CancellationToken()) is False

    def test_cancel_from_other_thread(self) -> None:
        """Test cancel() from another thread wakes the sleeper."""
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        start = time.monotonic()
        try:
            assert interruptible_sleep(10.0, token) is True
        finally:
            timer.cancel()
        assert time.monotonic() - start < 5.0

    def test_deadline_inside_sleep(self) -> None:
        """Test a deadline shorter than the sleep cuts it short."""
        token = CancellationToken.with_timeout(0.05)
        start = time.monotonic()
        assert interruptible_sleep(10.0, token) is True
        assert time.monotonic() - start < 5.0


class TestInterruptibleSleepAsync:
    """Tests for the asyncio sleeper."""

    @pytest.mark.asyncio
    async def test_sleep_without_token(self) -> None:
        """Test a plain async sleep reports no cancellation."""
        assert await interruptible_sleep_async(0.0, None) is False

    @pytest.mark.asyncio
    async def test_full_delay_elapses(self) -> None:
        """Test an uncancelled short sleep returns False."""
        assert await interruptible_sleep_async(0.01, CancellationToken()) is False

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleeper(self) -> None:
        """Test cancel() from the loop wakes a long async sleep."""
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        result = await asyncio.wait_for(interruptible_sleep_async(10.0, token), timeout=5.0)

        assert result is True

    @pytest.mark.asyncio
    async def test_cancel_from_thread_wakes_sleeper(self) -> None:
        """Test cancel() from another thread wakes a long async sleep."""
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            result = await asyncio.wait_for(interruptible_sleep_async(10.0, token), timeout=5.0)
        finally:
            timer.cancel()

        assert result is True

    @pytest.mark.asyncio
    async def test_deadline_inside_sleep(self) -> None:
        """Test a deadline shorter than the sleep cuts it short."""
        token = CancellationToken.with_timeout(0.05)
        result = await asyncio.wait_for(interruptible_sleep_async(10.0, token), timeout=5.0)
        assert result is True

    @pytest.mark.asyncio
    async def test_callback_unregistered_after_sleep(self) -> None:
        """Test the sleeper leaves no callback behind on the token."""
        token = CancellationToken()
        await interruptible_sleep_async(0.0, token)
        assert token._callbacks == []
