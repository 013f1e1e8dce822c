"""Cooperative cancellation for the backoff sleep.

A CancellationToken combines an explicit ``cancel()`` signal with an
optional monotonic deadline. The engine only ever waits on it between
attempts, so cancelling aborts a pending backoff promptly instead of after
the full delay.

Example usage:
    token = CancellationToken.with_timeout(30.0)
    result = engine.execute(operation, cancel=token)

    # From another thread
    token.cancel()
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable

from rebound.core.logging import get_logger

_logger = get_logger("cancellation")


class CancellationToken:
    """Thread-safe cancellation signal with an optional deadline.

    Attributes:
        deadline: Absolute time (on ``clock``) after which the token counts
            as cancelled, or None.
    """

    def __init__(
        self,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.deadline = deadline
        self._clock = clock
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> CancellationToken:
        """Token whose deadline is ``seconds`` from now."""
        if seconds < 0:
            raise ValueError(f"timeout must be >= 0, got {seconds}")
        return cls(deadline=clock() + seconds, clock=clock)

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called or the deadline has passed."""
        if self._event.is_set():
            return True
        return self.deadline is not None and self._clock() >= self.deadline

    @property
    def reason(self) -> str | None:
        """Why the token fired ("cancelled" or "deadline_exceeded"), else None."""
        if self._event.is_set():
            return self._reason
        if self.cancelled:
            return "deadline_exceeded"
        return None

    def remaining(self) -> float | None:
        """Seconds left before the deadline (None when there is none)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Idempotent; callbacks run once."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = self._callbacks[:]
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                _logger.exception("cancellation.callback_failed")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancel(); runs immediately if already cancelled.

        Deadline expiry does not trigger callbacks; waiters bound their
        wait by ``remaining()`` instead.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                registered = True
            else:
                registered = False
        if not registered:
            callback()

        def _remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _remove

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``, returning early on cancellation.

        Returns:
            True if the token is cancelled (explicitly or by deadline) by the
            end of the wait, False if the full delay elapsed.
        """
        if self.cancelled:
            return True
        remaining = self.remaining()
        if remaining is not None and remaining <= seconds:
            self._event.wait(remaining)
            return True
        return self._event.wait(max(0.0, seconds)) or self.cancelled


def interruptible_sleep(seconds: float, token: CancellationToken | None) -> bool:
    """Default synchronous sleeper used by the engine.

    Returns:
        True if the sleep was cut short by cancellation.
    """
    if token is None:
        time.sleep(seconds)
        return False
    return token.wait(seconds)


async def interruptible_sleep_async(seconds: float, token: CancellationToken | None) -> bool:
    """Default asyncio sleeper used by the engine.

    Races the delay against the token so ``cancel()`` from any thread wakes
    the waiting task.

    Returns:
        True if the sleep was cut short by cancellation.
    """
    if token is None:
        await asyncio.sleep(seconds)
        return False
    if token.cancelled:
        return True

    loop = asyncio.get_running_loop()
    woken: asyncio.Future[None] = loop.create_future()

    def _wake() -> None:
        if not woken.done():
            woken.set_result(None)

    remove = token.add_callback(lambda: loop.call_soon_threadsafe(_wake))
    remaining = token.remaining()
    hits_deadline = remaining is not None and remaining <= seconds
    timeout = remaining if hits_deadline and remaining is not None else seconds
    try:
        await asyncio.wait({woken}, timeout=max(0.0, timeout))
    finally:
        remove()
        if not woken.done():
            woken.cancel()
    return hits_deadline or token.cancelled
