# pyright: reportAny=false
"""Unit tests for configuration data models.

These tests focus on our design decisions (default values, level ordering)
rather than Python built-in behaviors (frozen models, StrEnum).
"""

import pytest
from pydantic import ValidationError

from specforge.config import (
    LogFormat,
    LoggingConfig,
    LogLevel,
    SpecforgeConfig,
    ValidationConfig,
)


class TestLogLevel:
    def test_ordered_from_most_to_least_verbose(self) -> None:
        assert list(LogLevel) == [
            LogLevel.DEBUG,
            LogLevel.INFO,
            LogLevel.WARNING,
            LogLevel.ERROR,
        ]


class TestLoggingConfig:
    def test_defaults_to_json_on_stderr(self) -> None:
        config = LoggingConfig()

        assert config.format == LogFormat.JSON
        assert config.file == ""


class TestValidationConfig:
    def test_rejects_negative_description_length(self) -> None:
        with pytest.raises(ValidationError):
            _ = ValidationConfig(min_description_length=-1)

    def test_reference_fallback_enabled_by_default(self) -> None:
        assert ValidationConfig().fallback_to_references


class TestSpecforgeConfig:
    def test_sections_are_independent_defaults(self) -> None:
        config = SpecforgeConfig.model_validate({"logging": {"level": "debug"}})

        assert config.logging.level == LogLevel.DEBUG
        assert config.storage == SpecforgeConfig().storage
