"""Core domain models and configuration."""

from rebound.core.config import EngineSettings, LogConfig, RetryPolicy
from rebound.core.errors import (
    Failure,
    FailureClassifier,
    FailureKind,
    JitterMode,
)

__all__ = [
    "EngineSettings",
    "Failure",
    "FailureClassifier",
    "FailureKind",
    "JitterMode",
    "LogConfig",
    "RetryPolicy",
]
