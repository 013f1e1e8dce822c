"""Configuration models for rebound.

Pydantic models for retry policies, logging and settings files. All models
are re-exported from this ``__init__``.
"""

from rebound.core.config.execution import RetryPolicy, RetryPolicyBuilder
from rebound.core.config.settings import ClassifierConfig, EngineSettings, LogConfig

__all__ = [
    "ClassifierConfig",
    "EngineSettings",
    "LogConfig",
    "RetryPolicy",
    "RetryPolicyBuilder",
]
