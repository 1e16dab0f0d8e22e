"""Wiring of the store and validation engine from configuration."""

from pathlib import Path
from typing import Final

from specforge.config import SpecforgeConfig, config_logger, load_config, specs_dir
from specforge.store._entity_store import EntityStore
from specforge.store._history import HistoryLog
from specforge.store._storage import FileEntityStorage
from specforge.store._validation import ValidationEngine, default_registry

HISTORY_FILENAME: Final = "history.jsonl"


def open_store(
    config: SpecforgeConfig | None = None,
    *,
    cwd: Path | None = None,
    actor: str = "user",
) -> EntityStore:
    """Build an entity store over the configured specs directory.

    Args:
        config: Settings to use; loaded from ``cwd`` when omitted.
        cwd: Working directory for config loading and directory resolution.
        actor: Name recorded on history entries.

    Returns:
        A store backed by YAML files, recording changes to
        ``<specs>/history.jsonl``.

    Raises:
        ConfigLoadError: If the configuration file cannot be parsed.
        ConfigValidationError: If the configuration is invalid.
    """
    settings = config if config is not None else load_config(cwd)
    root = specs_dir(settings, cwd=cwd)
    storage = FileEntityStorage(root, logger=config_logger(settings, component="storage"))
    return EntityStore(
        storage,
        history=HistoryLog(root / HISTORY_FILENAME, actor=actor),
        logger=config_logger(settings, component="store"),
    )


def open_validation_engine(
    store: EntityStore,
    config: SpecforgeConfig | None = None,
) -> ValidationEngine:
    """Build a validation engine with the built-in validators registered."""
    settings = config if config is not None else SpecforgeConfig()
    return ValidationEngine(
        store,
        registry=default_registry(),
        config=settings.validation,
        logger=config_logger(settings, component="validation"),
    )
