"""Top-level settings: logging, classifier extensions and the default policy.

Settings can be loaded from YAML so that retry behaviour for a service is
tuned without code changes::

    policy:
      max_attempts: 5
      base_delay: 0.2
      jitter_mode: decorrelated
      retryable_kinds: [transient, throttling, resource_conflict]
    classifier:
      codes:
        KMSThrottlingException: throttling
    logging:
      level: DEBUG
      format: json
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from rebound.core.config.execution import RetryPolicy
from rebound.core.errors.classifier import FailureClassifier
from rebound.core.errors.codes import FailureKind
from rebound.core.errors.exceptions import PolicyError
from rebound.core.logging import configure_logging

if TYPE_CHECKING:
    from rebound.execution.engine import ExecutionEngine
    from rebound.execution.events import EventSinkLike


class LogConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level to capture",
    )
    format: Literal["json", "console"] = Field(
        default="console",
        description="Output format: json for structured, console for human-readable",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path for rotated log file output (stderr when unset)",
    )
    max_file_size_mb: int = Field(
        default=50,
        gt=0,
        le=1000,
        description="Maximum log file size before rotation (MB)",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of rotated log files to keep",
    )
    include_timestamps: bool = Field(
        default=True,
        description="Include ISO8601 UTC timestamps in log entries",
    )
    include_context: bool = Field(
        default=True,
        description="Include call context (call_id, operation, attempt) in log entries",
    )

    def apply(self) -> None:
        """Configure structlog and stdlib logging from this config."""
        configure_logging(
            level=self.level,
            format=self.format,
            file_path=self.file_path,
            max_file_size_mb=self.max_file_size_mb,
            backup_count=self.backup_count,
            include_timestamps=self.include_timestamps,
            include_context=self.include_context,
        )


class ClassifierConfig(BaseModel):
    """Caller extensions to the built-in classification tables."""

    codes: dict[str, FailureKind] = Field(
        default_factory=dict,
        description="Exact error code to failure kind (case-insensitive)",
    )
    patterns: list[tuple[str, FailureKind]] = Field(
        default_factory=list,
        description="Ordered (regex, kind) pairs tried before the built-in patterns",
    )

    @model_validator(mode="after")
    def _validate_patterns(self) -> ClassifierConfig:
        for pattern, _ in self.patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid classifier pattern {pattern!r}: {exc}") from exc
        return self


class EngineSettings(BaseModel):
    """Everything needed to build a configured ExecutionEngine."""

    model_config = ConfigDict(extra="forbid")

    policy: RetryPolicy = Field(default_factory=RetryPolicy)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineSettings:
        """Load settings from a YAML file.

        Raises:
            PolicyError: If the file cannot be read, parsed or validated.
        """
        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except OSError as exc:
            raise PolicyError(f"cannot read settings file {path}: {exc}") from exc
        return cls.from_yaml_string(text)

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineSettings:
        """Load settings from a YAML string.

        Raises:
            PolicyError: If the text cannot be parsed or validated.
        """
        try:
            data: Any = yaml.safe_load(yaml_str)
        except yaml.YAMLError as exc:
            raise PolicyError(f"invalid settings YAML: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise PolicyError("settings YAML must be a mapping at the top level")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise PolicyError(f"invalid settings: {exc}") from exc

    def build_classifier(self) -> FailureClassifier:
        """Classifier with the built-in tables plus the configured extensions."""
        return FailureClassifier(
            codes=self.classifier.codes,
            patterns=self.classifier.patterns,
        )

    def build_engine(self, sink: EventSinkLike | None = None) -> ExecutionEngine:
        """Build an engine using this policy as its default and this classifier."""
        from rebound.execution.engine import ExecutionEngine

        return ExecutionEngine(
            policy=self.policy,
            classifier=self.build_classifier(),
            sink=sink,
        )
