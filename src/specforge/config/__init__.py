"""Configuration loading for specforge."""

from ._loader import (
    CONFIG_FILENAME,
    ENV_PREFIX,
    build_config,
    config_logger,
    deep_merge,
    load_config,
    parse_env_vars,
    parse_string_value,
    read_toml_file,
    specs_dir,
)
from ._models import (
    LogFormat,
    LoggingConfig,
    LogLevel,
    SpecforgeConfig,
    StorageConfig,
    ValidationConfig,
)

__all__ = [
    "CONFIG_FILENAME",
    "ENV_PREFIX",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "SpecforgeConfig",
    "StorageConfig",
    "ValidationConfig",
    "build_config",
    "config_logger",
    "deep_merge",
    "load_config",
    "parse_env_vars",
    "parse_string_value",
    "read_toml_file",
    "specs_dir",
]
