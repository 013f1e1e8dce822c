"""Decorator form of the execution engine.

Example usage:
    from rebound.execution.decorators import retrying

    @retrying(RetryPolicy(max_attempts=5), name="s3.get_object")
    def fetch(key: str) -> bytes:
        return s3.get_object(Bucket="reports", Key=key)["Body"].read()

    @retrying()
    async def lookup(user_id: str) -> dict:
        return await api.get_user(user_id)

Each call runs through ``ExecutionEngine.execute`` (or ``execute_async``
for coroutine functions) and returns the unwrapped value; terminal failures
raise the matching ``ExecutionFailedError`` subclass.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable
from typing import Any, TypeVar

from rebound.core.config.execution import RetryPolicy
from rebound.execution.engine import ExecutionEngine

F = TypeVar("F", bound=Callable[..., Any])

_default_engine: ExecutionEngine | None = None


def _get_default_engine() -> ExecutionEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = ExecutionEngine()
    return _default_engine


def retrying(
    policy: RetryPolicy | None = None,
    *,
    engine: ExecutionEngine | None = None,
    name: str | None = None,
) -> Callable[[F], F]:
    """Retry the decorated function under ``policy``.

    Args:
        policy: Policy for every call; defaults to the engine's policy.
        engine: Engine to run calls on; a shared default engine otherwise.
        name: Operation name for events and logs; defaults to the
            function's qualified name.
    """

    def decorator(func: F) -> F:
        op_name = name or func.__qualname__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                runner = engine or _get_default_engine()
                result = await runner.execute_async(
                    lambda: func(*args, **kwargs), policy, name=op_name
                )
                return result.unwrap()

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            runner = engine or _get_default_engine()
            result = runner.execute(lambda: func(*args, **kwargs), policy, name=op_name)
            return result.unwrap()

        return wrapper  # type: ignore[return-value]

    return decorator
