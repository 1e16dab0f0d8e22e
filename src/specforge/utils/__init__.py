"""Utility helpers for specforge."""

from ._concurrency import gather
from ._logging import LogFormatType, create_store_logger
from ._paths import find_git_root, resolve_specs_dir

__all__ = [
    "LogFormatType",
    "create_store_logger",
    "find_git_root",
    "gather",
    "resolve_specs_dir",
]
