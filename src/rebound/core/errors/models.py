"""Data models for failures raised by remote operations.

This module provides:
- Failure: Tagged failure value carrying the opaque cause, the service error
  code and an optional retry-after hint
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from rebound.core.constants import RETRY_AFTER_HEADER, TRUNCATE_ERROR_MESSAGE_CHARS


def _parse_retry_after(value: Any) -> float | None:
    """Parse a Retry-After value expressed in seconds.

    HTTP dates and other non-numeric forms are ignored rather than guessed.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds < 0 or seconds != seconds:  # negative or NaN
        return None
    return seconds


def _parse_status(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _lower_keys(headers: Any) -> dict[str, Any]:
    if not isinstance(headers, Mapping):
        return {}
    return {str(k).lower(): v for k, v in headers.items()}


@dataclass(frozen=True)
class Failure:
    """A failed attempt as seen by the engine.

    Failures are created by the operation (explicitly, or implicitly by
    raising) and consumed once by the classifier. The engine never strips the
    cause: it is attached to the terminal result for diagnostics.

    Attributes:
        cause: The underlying error, usually the raised exception. Opaque.
        code: Service-provided error code (e.g. "ThrottlingException").
        retry_after: Server-suggested wait in seconds before retrying.
        message: Human-readable description.
        status_code: HTTP-equivalent status code when the service reports one.
    """

    cause: Any = None
    code: str | None = None
    retry_after: float | None = None
    message: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        if self.retry_after is not None and self.retry_after < 0:
            raise ValueError(f"retry_after must be >= 0, got {self.retry_after}")

    @property
    def cause_type(self) -> type | None:
        """Type of the underlying cause, or None when there is no cause."""
        if self.cause is None:
            return None
        return self.cause if isinstance(self.cause, type) else type(self.cause)

    @property
    def summary(self) -> str:
        """Short one-line description for log events."""
        text = self.message
        if not text and isinstance(self.cause, BaseException):
            text = str(self.cause)
        if not text:
            text = self.code or (self.cause_type.__name__ if self.cause_type else "failure")
        if len(text) > TRUNCATE_ERROR_MESSAGE_CHARS:
            text = text[:TRUNCATE_ERROR_MESSAGE_CHARS] + "..."
        return text

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failure:
        """Build a Failure from a raised exception.

        SDK errors are duck-typed rather than imported. Two shapes are
        understood:

        - a ``response`` mapping as produced by AWS SDK client errors::

            {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"},
             "ResponseMetadata": {"HTTPStatusCode": 400,
                                  "HTTPHeaders": {"retry-after": "2"}}}

        - plain attributes: ``code`` / ``error_code``, ``status_code`` /
          ``status``, ``retry_after``.

        Args:
            exc: The exception raised by the operation.

        Returns:
            Failure with whatever code, status and hint could be extracted.
        """
        code: str | None = None
        message: str | None = None
        status: int | None = None
        retry_after: float | None = None

        response = getattr(exc, "response", None)
        if isinstance(response, Mapping):
            error = response.get("Error")
            if isinstance(error, Mapping):
                raw_code = error.get("Code")
                code = str(raw_code) if raw_code else None
                raw_message = error.get("Message")
                message = str(raw_message) if raw_message else None
            metadata = response.get("ResponseMetadata")
            if isinstance(metadata, Mapping):
                status = _parse_status(metadata.get("HTTPStatusCode"))
                headers = _lower_keys(metadata.get("HTTPHeaders"))
                retry_after = _parse_retry_after(headers.get(RETRY_AFTER_HEADER))

        if code is None:
            for attr in ("code", "error_code"):
                raw = getattr(exc, attr, None)
                if isinstance(raw, str) and raw:
                    code = raw
                    break
        if status is None:
            for attr in ("status_code", "status"):
                status = _parse_status(getattr(exc, attr, None))
                if status is not None:
                    break
        if retry_after is None:
            retry_after = _parse_retry_after(getattr(exc, "retry_after", None))

        return cls(
            cause=exc,
            code=code,
            retry_after=retry_after,
            message=message or str(exc) or None,
            status_code=status,
        )

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for logging/serialization."""
        return {
            "code": self.code,
            "status_code": self.status_code,
            "retry_after": self.retry_after,
            "message": self.summary,
            "cause_type": self.cause_type.__name__ if self.cause_type else None,
        }
