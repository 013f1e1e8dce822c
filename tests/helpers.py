"""Shared test helpers: scripted operations and SDK-shaped errors."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class ServiceError(Exception):
    """Mimics an AWS SDK client error (``exc.response`` mapping)."""

    def __init__(
        self,
        code: str,
        message: str = "",
        status: int | None = None,
        retry_after: str | None = None,
    ) -> None:
        super().__init__(message or code)
        headers: dict[str, str] = {}
        if retry_after is not None:
            headers["Retry-After"] = retry_after
        metadata: dict[str, Any] = {"HTTPHeaders": headers}
        if status is not None:
            metadata["HTTPStatusCode"] = status
        self.response = {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": metadata,
        }


class ScriptedOperation:
    """Zero-argument operation that replays a script of outcomes.

    Exceptions in the script are raised; anything else is returned. The
    last entry repeats once the script is used up.
    """

    def __init__(self, outcomes: Iterable[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self) -> Any:
        index = min(self.calls, len(self.outcomes) - 1)
        self.calls += 1
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
