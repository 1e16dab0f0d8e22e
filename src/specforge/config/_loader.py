# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""TOML configuration file loading and merging."""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import orjson
from pydantic import ValidationError

from specforge.config._models import LogFormat, SpecforgeConfig
from specforge.exceptions import ConfigLoadError, ConfigValidationError
from specforge.utils import create_store_logger, resolve_specs_dir

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

CONFIG_FILENAME: Final = "specforge.toml"
ENV_PREFIX: Final = "SPECFORGE_"

# Variables read directly by the logging helpers, not config keys.
_RESERVED_ENV: Final = frozenset({"SPECFORGE_DEBUG", "SPECFORGE_LOG_LEVEL"})


def read_toml_file(path: Path) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed TOML content as dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigLoadError: If the file cannot be parsed.
    """
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Failed to parse TOML file: {e}"
        raise ConfigLoadError(
            msg,
            path=path,
            line=getattr(e, "lineno", None),
            column=getattr(e, "colno", None),
        ) from e


def copy_value(value: Any) -> Any:  # pyright: ignore[reportExplicitAny]
    """Create a deep copy of a configuration value.

    Recursively copies dicts and lists so the result shares no mutable
    structure with the original.
    """
    if isinstance(value, dict):
        return {k: copy_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_value(item) for item in value]
    return value


def deep_merge(
    base: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
    override: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Deep merge two configuration dictionaries.

    Neither input is modified.

    Merge rules:
        - Dictionaries are recursively merged
        - Arrays are replaced entirely (no element-wise merge)
        - Scalars are replaced with override value
        - Missing keys in override preserve base values
    """
    result: dict[str, Any] = {k: copy_value(v) for k, v in base.items()}  # pyright: ignore[reportExplicitAny]

    for key, override_val in override.items():
        base_val = result.get(key)
        if isinstance(base_val, dict) and isinstance(override_val, dict):
            result[key] = deep_merge(base_val, override_val)
        else:
            result[key] = copy_value(override_val)

    return result


def set_nested_key(
    d: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    key_path: str,
    value: Any,  # pyright: ignore[reportExplicitAny]
) -> None:
    """Set a value at a dotted key path, creating intermediate dicts.

    Example:
        >>> d = {}
        >>> set_nested_key(d, "logging.level", "debug")
        >>> d
        {'logging': {'level': 'debug'}}
    """
    parts = key_path.split(".")
    current = d

    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    current[parts[-1]] = value


def parse_string_value(value: str) -> Any:  # pyright: ignore[reportExplicitAny]
    """Parse a string value with automatic type inference.

    Order of type inference:
        1. Boolean: true/false (case-insensitive)
        2. Integer: parseable as int
        3. Float: parseable as float (with decimal point)
        4. JSON array or object: wrapped in [] or {}
        5. String: anything else

    Examples:
        >>> parse_string_value("true")
        True
        >>> parse_string_value("42")
        42
        >>> parse_string_value("[1, 2, 3]")
        [1, 2, 3]
    """
    lower_value = value.lower()
    if lower_value in ("true", "false"):
        return lower_value == "true"

    try:
        return int(value)
    except ValueError:
        pass

    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass

    if (value.startswith("[") and value.endswith("]")) or (
        value.startswith("{") and value.endswith("}")
    ):
        try:
            return orjson.loads(value)
        except orjson.JSONDecodeError:
            pass

    return value


def parse_env_vars(
    prefix: str = ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Parse environment variables into a config dictionary.

    Environment variable naming:
        - Add prefix (SPECFORGE_)
        - Convert to uppercase
        - Replace dots with double underscores
        - Example: logging.level -> SPECFORGE_LOGGING__LEVEL

    Args:
        prefix: Environment variable prefix.
        environ: Variables to read (defaults to ``os.environ``).

    Returns:
        Nested dictionary of parsed values.
    """
    source = os.environ if environ is None else environ
    result: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    for key, value in source.items():
        if not key.startswith(prefix) or key in _RESERVED_ENV:
            continue
        config_key = key[len(prefix) :]
        if not config_key:
            continue
        set_nested_key(
            result, config_key.replace("__", ".").lower(), parse_string_value(value)
        )

    return result


def build_config(
    data: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
    *,
    source: str | None = None,
) -> SpecforgeConfig:
    """Validate a merged configuration dictionary.

    Raises:
        ConfigValidationError: For the first invalid value.
    """
    try:
        return SpecforgeConfig.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        key = ".".join(str(part) for part in error["loc"])
        msg = f"Invalid configuration value for '{key}'"
        raise ConfigValidationError(
            msg,
            key=key,
            value=error.get("input"),
            expected=error["msg"],
            source=source,
        ) from e


def load_config(
    root: Path | None = None,
    *,
    env: bool = True,
    environ: Mapping[str, str] | None = None,
) -> SpecforgeConfig:
    """Load configuration for a project.

    Sources are merged from lowest to highest precedence: built-in defaults,
    ``specforge.toml`` in ``root``, then ``SPECFORGE_`` environment variables.

    Args:
        root: Project root holding ``specforge.toml`` (defaults to cwd).
        env: Whether to apply environment variables.
        environ: Variables to read instead of ``os.environ``.

    Returns:
        The validated configuration.

    Raises:
        ConfigLoadError: If the TOML file cannot be parsed.
        ConfigValidationError: If a merged value is invalid.
    """
    project_root = root if root is not None else Path.cwd()
    merged: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]

    path = project_root / CONFIG_FILENAME
    if path.is_file():
        merged = deep_merge(merged, read_toml_file(path))

    if env:
        merged = deep_merge(merged, parse_env_vars(environ=environ))

    return build_config(merged)


def specs_dir(config: SpecforgeConfig, *, cwd: Path | None = None) -> Path:
    """Resolve the specs directory described by a configuration."""
    return resolve_specs_dir(
        config.storage.path, auto_detect=config.storage.auto_detect, cwd=cwd
    )


def config_logger(
    config: SpecforgeConfig, *, component: str = ""
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a store logger from the logging section of a configuration."""
    return create_store_logger(
        level=str(config.logging.level),
        log_format="text" if config.logging.format == LogFormat.TEXT else "json",
        log_file=config.logging.file,
        component=component,
    )
