# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""File I/O utilities for persisted entities and the history log.

Entity documents are stored as YAML mappings and the history log as JSONL.
All entity writes go through a temp file that is renamed over the target, so
a document is either fully written or left untouched.
"""

import tempfile
from pathlib import Path
from typing import Any

import orjson
import yaml

from specforge.exceptions import EntityIOError, EntityParseError

__all__ = [
    "append_jsonl",
    "read_jsonl",
    "read_text_if_exists",
    "read_yaml",
    "remove_file",
    "write_text_atomic",
    "write_yaml_atomic",
]


def _atomic_write(path: Path, content: bytes | str) -> None:
    """Write content to a file atomically.

    Args:
        path: Destination file path.
        content: Content to write (bytes or string).

    Raises:
        EntityIOError: If the write operation fails.
    """
    _ = path.parent.mkdir(parents=True, exist_ok=True)

    is_bytes = isinstance(content, bytes)
    mode = "wb" if is_bytes else "w"
    encoding = None if is_bytes else "utf-8"

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode=mode,
            dir=path.parent,
            delete=False,
            suffix=".tmp",
            encoding=encoding,
        ) as f:
            _ = f.write(content)
            temp_path = Path(f.name)

        _ = temp_path.replace(path)

    except OSError as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        msg = f"Failed to write file: {e}"
        raise EntityIOError(msg, path=path, operation="write", cause=e) from e


def write_text_atomic(path: Path, content: str) -> None:
    """Write raw text atomically (used to restore snapshots)."""
    _atomic_write(path, content)


def read_text_if_exists(path: Path) -> str | None:
    """Read a text file, returning None when it does not exist.

    Raises:
        EntityIOError: If the file exists but cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        msg = f"Failed to read file: {e}"
        raise EntityIOError(msg, path=path, operation="read", cause=e) from e


def read_yaml(path: Path) -> dict[str, Any] | None:  # pyright: ignore[reportExplicitAny]
    """Read and parse a YAML document.

    Args:
        path: Path to the YAML file.

    Returns:
        The parsed mapping, or None if the file does not exist.

    Raises:
        EntityIOError: If the file exists but cannot be read.
        EntityParseError: If the content is not valid YAML or not a mapping.
    """
    content = read_text_if_exists(path)
    if content is None:
        return None

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        line: int | None = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
        msg = f"Invalid YAML: {e}"
        raise EntityParseError(
            msg, path=path, line=line, content_type="yaml", cause=e
        ) from e

    if not isinstance(data, dict):
        msg = f"Expected YAML mapping, got {type(data).__name__}"
        raise EntityParseError(msg, path=path, content_type="yaml")

    return data


def write_yaml_atomic(
    path: Path,
    data: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> None:
    """Write a dictionary as a YAML document atomically.

    Keys keep their insertion order so documents read in schema field order.

    Raises:
        EntityIOError: If serialization or the write fails.
    """
    try:
        content = yaml.safe_dump(
            data,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
    except yaml.YAMLError as e:
        msg = f"Failed to serialize YAML: {e}"
        raise EntityIOError(msg, path=path, operation="write", cause=e) from e

    _atomic_write(path, content)


def remove_file(path: Path) -> bool:
    """Delete a file.

    Returns:
        True if the file was removed, False if it did not exist.

    Raises:
        EntityIOError: If the file exists but cannot be removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        msg = f"Failed to delete file: {e}"
        raise EntityIOError(msg, path=path, operation="delete", cause=e) from e
    return True


def read_jsonl(
    path: Path,
) -> list[dict[str, Any]]:  # pyright: ignore[reportExplicitAny]
    """Read and parse a JSONL (JSON Lines) file.

    Returns an empty list for missing or empty files.

    Raises:
        EntityIOError: If the file exists but cannot be read.
        EntityParseError: If a line contains invalid JSON or is not an object.
    """
    content = read_text_if_exists(path)
    if content is None or not content.strip():
        return []

    entries: list[dict[str, Any]] = []  # pyright: ignore[reportExplicitAny]
    for line_num, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue

        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            msg = f"Invalid JSON on line {line_num}: {e}"
            raise EntityParseError(
                msg, path=path, line=line_num, content_type="jsonl", cause=e
            ) from e

        if not isinstance(data, dict):
            msg = f"Expected JSON object on line {line_num}, got {type(data).__name__}"
            raise EntityParseError(msg, path=path, line=line_num, content_type="jsonl")

        entries.append(data)

    return entries


def append_jsonl(
    path: Path,
    entry: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> None:
    """Append a JSON object to a JSONL file.

    Raises:
        EntityIOError: If serialization or the append fails.
    """
    _ = path.parent.mkdir(parents=True, exist_ok=True)

    try:
        content = orjson.dumps(entry)
    except TypeError as e:
        msg = f"Failed to serialize JSON: {e}"
        raise EntityIOError(msg, path=path, operation="append", cause=e) from e

    try:
        with path.open("ab") as f:
            _ = f.write(content)
            _ = f.write(b"\n")
    except OSError as e:
        msg = f"Failed to append to file: {e}"
        raise EntityIOError(msg, path=path, operation="append", cause=e) from e
