"""Configuration models.

This module provides the frozen Pydantic models for specforge settings.
Unknown keys are ignored at every level.
"""

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class StorageConfig(BaseModel):
    """Storage configuration section.

    Attributes:
        path: Explicit specs directory (empty to resolve automatically).
        auto_detect: Look for an existing ``.specs`` or ``specs`` directory.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    path: str = ""
    auto_detect: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty logs to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class ValidationConfig(BaseModel):
    """Validation configuration section.

    Attributes:
        min_description_length: Component descriptions shorter than this
            produce a business-rule warning.
        fallback_to_references: Run reference checks when no validator is
            registered.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    min_description_length: int = Field(default=10, ge=0)
    fallback_to_references: bool = True


class SpecforgeConfig(BaseModel):
    """Root specforge configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()
    validation: ValidationConfig = ValidationConfig()
