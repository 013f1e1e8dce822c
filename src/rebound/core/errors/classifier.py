"""FailureClassifier implementation for code- and type-based classification.

Maps a Failure to exactly one FailureKind by consulting, in priority order:

1. Caller-supplied exact code table
2. Built-in exact code table (well-known AWS-style error codes)
3. Code keyword patterns (caller patterns first)
4. HTTP-equivalent status code
5. Cause type (caller type table first, then built-ins, via the MRO)
6. FATAL fallback

Classification is total: it never raises, and an internal error while
classifying degrades to FATAL.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import NamedTuple

from rebound.core.logging import get_logger

from .codes import FailureKind
from .models import Failure

_logger = get_logger("classifier")


# =============================================================================
# Default classification tables.
# Kept at module scope so they are reviewable and testable as data.
# =============================================================================

_DEFAULT_CODE_TABLE: dict[str, FailureKind] = {
    # Request-rate limiting and throughput/quota exhaustion
    "Throttling": FailureKind.THROTTLING,
    "ThrottlingException": FailureKind.THROTTLING,
    "ThrottledException": FailureKind.THROTTLING,
    "TooManyRequestsException": FailureKind.THROTTLING,
    "RequestLimitExceeded": FailureKind.THROTTLING,
    "RequestThrottled": FailureKind.THROTTLING,
    "RequestThrottledException": FailureKind.THROTTLING,
    "SlowDown": FailureKind.THROTTLING,
    "ProvisionedThroughputExceededException": FailureKind.THROTTLING,
    "TransactionInProgressException": FailureKind.THROTTLING,
    "ServiceQuotaExceededException": FailureKind.THROTTLING,
    "LimitExceededException": FailureKind.THROTTLING,
    "BandwidthLimitExceeded": FailureKind.THROTTLING,
    "EC2ThrottledException": FailureKind.THROTTLING,
    # Transient server-side failures
    "InternalError": FailureKind.TRANSIENT,
    "InternalFailure": FailureKind.TRANSIENT,
    "InternalServerError": FailureKind.TRANSIENT,
    "InternalServerException": FailureKind.TRANSIENT,
    "InternalServiceError": FailureKind.TRANSIENT,
    "ServiceUnavailable": FailureKind.TRANSIENT,
    "ServiceUnavailableException": FailureKind.TRANSIENT,
    "ServiceException": FailureKind.TRANSIENT,
    "Unavailable": FailureKind.TRANSIENT,
    "RequestTimeout": FailureKind.TRANSIENT,
    "RequestTimeoutException": FailureKind.TRANSIENT,
    "PriorRequestNotComplete": FailureKind.TRANSIENT,
    "IDPCommunicationError": FailureKind.TRANSIENT,
    # Resource propagation delays (eventual consistency)
    "InvalidSubnetID.NotFound": FailureKind.TRANSIENT,
    "InvalidInstanceID.NotFound": FailureKind.TRANSIENT,
    "InvalidGroup.NotFound": FailureKind.TRANSIENT,
    "InvalidVpcID.NotFound": FailureKind.TRANSIENT,
    "InvalidAMIID.NotFound": FailureKind.TRANSIENT,
    # Target does not exist
    "ResourceNotFoundException": FailureKind.NOT_FOUND,
    "NotFoundException": FailureKind.NOT_FOUND,
    "NotFound": FailureKind.NOT_FOUND,
    "NoSuchKey": FailureKind.NOT_FOUND,
    "NoSuchBucket": FailureKind.NOT_FOUND,
    "NoSuchEntity": FailureKind.NOT_FOUND,
    "NoSuchUpload": FailureKind.NOT_FOUND,
    "QueueDoesNotExist": FailureKind.NOT_FOUND,
    "AWS.SimpleQueueService.NonExistentQueue": FailureKind.NOT_FOUND,
    # Conflicting concurrent state change
    "ConflictException": FailureKind.RESOURCE_CONFLICT,
    "ResourceInUseException": FailureKind.RESOURCE_CONFLICT,
    "ResourceConflictException": FailureKind.RESOURCE_CONFLICT,
    "ResourceAlreadyExistsException": FailureKind.RESOURCE_CONFLICT,
    "EntityAlreadyExists": FailureKind.RESOURCE_CONFLICT,
    "BucketAlreadyExists": FailureKind.RESOURCE_CONFLICT,
    "BucketAlreadyOwnedByYou": FailureKind.RESOURCE_CONFLICT,
    "ConcurrentModificationException": FailureKind.RESOURCE_CONFLICT,
    "ConditionalCheckFailedException": FailureKind.RESOURCE_CONFLICT,
    "OperationAbortedException": FailureKind.RESOURCE_CONFLICT,
    "IncorrectState": FailureKind.RESOURCE_CONFLICT,
    "InvalidStateException": FailureKind.RESOURCE_CONFLICT,
    # Malformed input
    "ValidationException": FailureKind.INVALID_INPUT,
    "ValidationError": FailureKind.INVALID_INPUT,
    "InvalidParameterValue": FailureKind.INVALID_INPUT,
    "InvalidParameterValueException": FailureKind.INVALID_INPUT,
    "InvalidParameterException": FailureKind.INVALID_INPUT,
    "InvalidParameterCombination": FailureKind.INVALID_INPUT,
    "InvalidRequestException": FailureKind.INVALID_INPUT,
    "InvalidArgument": FailureKind.INVALID_INPUT,
    "MissingParameter": FailureKind.INVALID_INPUT,
    "MissingRequiredParameter": FailureKind.INVALID_INPUT,
    "MalformedPolicyDocument": FailureKind.INVALID_INPUT,
    "MalformedQueryString": FailureKind.INVALID_INPUT,
    "SerializationException": FailureKind.INVALID_INPUT,
    "BadRequestException": FailureKind.INVALID_INPUT,
    # Authorization
    "AccessDenied": FailureKind.PERMISSION_DENIED,
    "AccessDeniedException": FailureKind.PERMISSION_DENIED,
    "UnauthorizedOperation": FailureKind.PERMISSION_DENIED,
    "UnauthorizedException": FailureKind.PERMISSION_DENIED,
    "UnrecognizedClientException": FailureKind.PERMISSION_DENIED,
    "InvalidClientTokenId": FailureKind.PERMISSION_DENIED,
    "ExpiredToken": FailureKind.PERMISSION_DENIED,
    "ExpiredTokenException": FailureKind.PERMISSION_DENIED,
    "SignatureDoesNotMatch": FailureKind.PERMISSION_DENIED,
    "AuthFailure": FailureKind.PERMISSION_DENIED,
    "OptInRequired": FailureKind.PERMISSION_DENIED,
}

# Ordered: the first matching pattern wins.
_DEFAULT_CODE_PATTERNS: list[tuple[str, FailureKind]] = [
    (r"^invalid\w*id\.notfound$", FailureKind.TRANSIENT),
    (r"throttl|rate.?exceeded|limit.?exceeded|quota|too.?many|slow.?down|throughput",
     FailureKind.THROTTLING),
    (r"access.?denied|unauthori[sz]ed|forbidden|not.?authori[sz]ed|expired.?token"
     r"|client.?token|signature|auth.?fail", FailureKind.PERMISSION_DENIED),
    (r"not.?found|no.?such|does.?not.?exist|non.?existent", FailureKind.NOT_FOUND),
    (r"conflict|in.?use|already.?exists|concurrent|being.?(modified|deleted|created)"
     r"|incorrect.?state|invalid.?state", FailureKind.RESOURCE_CONFLICT),
    (r"validation|invalid|malformed|missing|bad.?request|out.?of.?range",
     FailureKind.INVALID_INPUT),
    (r"internal|unavailable|time.?out|timed.?out|server.?error|service.?error|try.?again",
     FailureKind.TRANSIENT),
]

_STATUS_TABLE: dict[int, FailureKind] = {
    400: FailureKind.INVALID_INPUT,
    401: FailureKind.PERMISSION_DENIED,
    403: FailureKind.PERMISSION_DENIED,
    404: FailureKind.NOT_FOUND,
    408: FailureKind.TRANSIENT,
    409: FailureKind.RESOURCE_CONFLICT,
    410: FailureKind.NOT_FOUND,
    412: FailureKind.RESOURCE_CONFLICT,
    422: FailureKind.INVALID_INPUT,
    429: FailureKind.THROTTLING,
}

_DEFAULT_TYPE_TABLE: dict[type, FailureKind] = {
    TimeoutError: FailureKind.TRANSIENT,
    ConnectionError: FailureKind.TRANSIENT,
    PermissionError: FailureKind.PERMISSION_DENIED,
    FileNotFoundError: FailureKind.NOT_FOUND,
    LookupError: FailureKind.NOT_FOUND,
    FileExistsError: FailureKind.RESOURCE_CONFLICT,
    ValueError: FailureKind.INVALID_INPUT,
    TypeError: FailureKind.INVALID_INPUT,
}


class Classification(NamedTuple):
    """A classification decision and the rule that produced it.

    Attributes:
        kind: The resulting failure kind.
        matched_by: Which lookup step decided ("code", "pattern", "status",
            "type", "fallback" or "error").
    """

    kind: FailureKind
    matched_by: str


def _compile_patterns(
    patterns: Iterable[tuple[str, FailureKind]],
) -> list[tuple[re.Pattern[str], FailureKind]]:
    """Compile (regex, kind) pairs into case-insensitive Pattern objects."""
    return [(re.compile(p, re.IGNORECASE), kind) for p, kind in patterns]


def _normalize_codes(codes: Mapping[str, FailureKind]) -> dict[str, FailureKind]:
    return {code.lower(): FailureKind(kind) for code, kind in codes.items()}


class FailureClassifier:
    """Classifies failures into a FailureKind.

    The built-in tables cover common AWS-style error codes, HTTP status
    codes and Python exception types. Callers extend them with their own
    code table, code patterns and exception-type table; caller entries are
    consulted before the built-ins at each step.

    Thread-safe: tables are built once in ``__init__`` and never mutated.

    Example:
        classifier = FailureClassifier(codes={"KMSThrottlingException": "throttling"})
        kind = classifier.classify(Failure.from_exception(exc))
    """

    def __init__(
        self,
        codes: Mapping[str, FailureKind] | None = None,
        patterns: Iterable[tuple[str, FailureKind]] | None = None,
        types: Mapping[type, FailureKind] | None = None,
    ) -> None:
        """Initialize classifier with optional caller-supplied tables.

        Args:
            codes: Exact error code to kind (case-insensitive).
            patterns: Ordered (regex, kind) pairs tried against the code
                before the built-in patterns.
            types: Exception type to kind; subclasses match via the MRO.
        """
        self._custom_codes: dict[str, FailureKind] = _normalize_codes(codes or {})
        self._custom_patterns = list(patterns or [])
        self._custom_types: dict[type, FailureKind] = {
            t: FailureKind(kind) for t, kind in (types or {}).items()
        }

        self._builtin_codes = _normalize_codes(_DEFAULT_CODE_TABLE)
        self._patterns = _compile_patterns(
            [(p, FailureKind(k)) for p, k in self._custom_patterns] + _DEFAULT_CODE_PATTERNS
        )

    def extend(
        self,
        codes: Mapping[str, FailureKind] | None = None,
        patterns: Iterable[tuple[str, FailureKind]] | None = None,
        types: Mapping[type, FailureKind] | None = None,
    ) -> FailureClassifier:
        """Return a new classifier with additional caller entries.

        Entries passed here take precedence over the ones this classifier
        was built with.
        """
        merged_codes = {**self._custom_codes, **_normalize_codes(codes or {})}
        merged_types = {**self._custom_types, **(types or {})}
        merged_patterns = list(patterns or []) + self._custom_patterns
        return FailureClassifier(codes=merged_codes, patterns=merged_patterns, types=merged_types)

    def classify(self, failure: Failure) -> FailureKind:
        """Classify a failure.

        Args:
            failure: The failure produced by an operation.

        Returns:
            The FailureKind; FATAL when nothing matches.
        """
        return self.explain(failure).kind

    def explain(self, failure: Failure) -> Classification:
        """Classify a failure and report which rule matched.

        Never raises: any error while classifying degrades to FATAL.
        """
        try:
            return self._classify(failure)
        except Exception as exc:
            _logger.warning(
                "classifier.classification_error",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return Classification(FailureKind.FATAL, "error")

    def _classify(self, failure: Failure) -> Classification:
        code = failure.code.strip() if failure.code else ""
        if code:
            by_code = self._classify_code(code)
            if by_code is not None:
                return by_code

        if failure.status_code is not None:
            by_status = self._classify_status(failure.status_code)
            if by_status is not None:
                return Classification(by_status, "status")

        cause_type = failure.cause_type
        if cause_type is not None:
            by_type = self._classify_type(cause_type)
            if by_type is not None:
                return Classification(by_type, "type")

        _logger.debug(
            "classifier.fallback_fatal",
            code=failure.code,
            status_code=failure.status_code,
            cause_type=cause_type.__name__ if cause_type is not None else None,
        )
        return Classification(FailureKind.FATAL, "fallback")

    def _classify_code(self, code: str) -> Classification | None:
        key = code.lower()
        if key in self._custom_codes:
            return Classification(self._custom_codes[key], "code")
        if key in self._builtin_codes:
            return Classification(self._builtin_codes[key], "code")
        for pattern, kind in self._patterns:
            if pattern.search(code):
                return Classification(kind, "pattern")
        return None

    def _classify_status(self, status: int) -> FailureKind | None:
        if status in _STATUS_TABLE:
            return _STATUS_TABLE[status]
        if 500 <= status <= 599:
            return FailureKind.TRANSIENT
        return None

    def _classify_type(self, cause_type: type) -> FailureKind | None:
        mro = getattr(cause_type, "__mro__", (cause_type,))
        for table in (self._custom_types, _DEFAULT_TYPE_TABLE):
            for klass in mro:
                if klass in table:
                    return table[klass]
        return None


DEFAULT_CLASSIFIER = FailureClassifier()
"""Shared classifier with only the built-in tables (immutable, safe to share)."""


def classify(failure: Failure) -> FailureKind:
    """Classify a failure with the built-in tables."""
    return DEFAULT_CLASSIFIER.classify(failure)
