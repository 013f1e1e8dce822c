"""Tests for EngineSettings loading and wiring."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from rebound.core.config import ClassifierConfig, EngineSettings, LogConfig
from rebound.core.errors import Failure, FailureKind, JitterMode, PolicyError
from rebound.core.logging import get_logger
from rebound.execution.engine import ExecutionEngine
from rebound.execution.events import CollectingEventSink

SAMPLE_YAML = """
policy:
  max_attempts: 5
  max_elapsed: 30
  base_delay: 0.2
  max_delay: 5.0
  multiplier: 3.0
  jitter_mode: decorrelated
  retryable_kinds: [transient, throttling, resource_conflict]
classifier:
  codes:
    KMSThrottlingException: throttling
  patterns:
    - ["^Widget", transient]
logging:
  level: DEBUG
  format: json
  include_timestamps: false
"""


class TestEngineSettingsLoading:
    """Tests for YAML loading."""

    def test_from_yaml_string(self) -> None:
        """Test every section is parsed into its model."""
        settings = EngineSettings.from_yaml_string(SAMPLE_YAML)

        assert settings.policy.max_attempts == 5
        assert settings.policy.max_elapsed == 30.0
        assert settings.policy.jitter_mode == JitterMode.DECORRELATED
        assert FailureKind.RESOURCE_CONFLICT in settings.policy.retryable_kinds
        assert settings.classifier.codes == {"KMSThrottlingException": FailureKind.THROTTLING}
        assert settings.classifier.patterns == [("^Widget", FailureKind.TRANSIENT)]
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "json"
        assert settings.logging.include_timestamps is False

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        """Test loading from a file path."""
        path = tmp_path / "rebound.yaml"
        path.write_text(SAMPLE_YAML, encoding="utf-8")

        settings = EngineSettings.from_yaml(path)

        assert settings.policy.max_attempts == 5

    def test_empty_document_uses_defaults(self) -> None:
        """Test an empty file yields default settings."""
        settings = EngineSettings.from_yaml_string("")
        assert settings == EngineSettings()

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test an unreadable file raises PolicyError."""
        with pytest.raises(PolicyError, match="cannot read"):
            EngineSettings.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self) -> None:
        """Test malformed YAML raises PolicyError."""
        with pytest.raises(PolicyError, match="invalid settings YAML"):
            EngineSettings.from_yaml_string("policy: [unclosed")

    def test_top_level_must_be_mapping(self) -> None:
        """Test a list document is rejected."""
        with pytest.raises(PolicyError, match="mapping"):
            EngineSettings.from_yaml_string("- 1\n- 2\n")

    @pytest.mark.parametrize(
        "document",
        [
            "policy:\n  multiplier: 1.0\n",
            "policy:\n  max_attempts: 0\n",
            "policy:\n  retryable_kinds: [flaky]\n",
            "policy:\n  base_delay: 5\n  max_delay: 1\n",
            "classifier:\n  codes:\n    Foo: sometimes\n",
            "classifier:\n  patterns:\n    - ['(unclosed', transient]\n",
            "unknown_section: true\n",
        ],
    )
    def test_validation_errors_become_policy_errors(self, document: str) -> None:
        """Test invalid values surface as PolicyError, chained to the cause."""
        with pytest.raises(PolicyError, match="invalid settings") as exc_info:
            EngineSettings.from_yaml_string(document)
        assert exc_info.value.__cause__ is not None


class TestEngineSettingsWiring:
    """Tests for build_classifier and build_engine."""

    def test_build_classifier_includes_extensions(self) -> None:
        """Test configured codes and patterns extend the built-ins."""
        classifier = EngineSettings.from_yaml_string(SAMPLE_YAML).build_classifier()

        assert classifier.classify(Failure(code="KMSThrottlingException")) == FailureKind.THROTTLING
        assert classifier.classify(Failure(code="WidgetNotFound")) == FailureKind.TRANSIENT
        assert classifier.classify(Failure(code="NoSuchKey")) == FailureKind.NOT_FOUND

    def test_build_engine(self) -> None:
        """Test the engine uses the configured policy and the given sink."""
        settings = EngineSettings.from_yaml_string(SAMPLE_YAML)
        sink = CollectingEventSink()

        engine = settings.build_engine(sink=sink)

        assert isinstance(engine, ExecutionEngine)
        assert engine.policy == settings.policy
        assert engine.sink is sink

    def test_classifier_config_defaults(self) -> None:
        """Test an empty classifier section adds nothing."""
        config = ClassifierConfig()
        assert config.codes == {}
        assert config.patterns == []


class TestLogConfig:
    """Tests for LogConfig."""

    def test_defaults(self) -> None:
        """Test default logging settings."""
        config = LogConfig()
        assert config.level == "INFO"
        assert config.format == "console"
        assert config.file_path is None

    def test_invalid_level(self) -> None:
        """Test unknown levels are rejected."""
        with pytest.raises(ValueError):
            LogConfig(level="VERBOSE")  # type: ignore[arg-type]

    def test_apply_writes_json_file(self, tmp_path: Path) -> None:
        """Test apply() configures JSON output to a rotated file."""
        log_file = tmp_path / "logs" / "rebound.log"
        LogConfig(level="DEBUG", format="json", file_path=log_file).apply()

        get_logger("settings-test").info("settings.applied", region="eu-west-1")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text(encoding="utf-8").strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["event"] == "settings.applied"
        assert entry["component"] == "settings-test"
        assert entry["region"] == "eu-west-1"
        assert entry["level"] == "info"
        assert "timestamp" in entry
