"""Specforge exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


class SpecforgeError(Exception):
    """Base exception for specforge errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(SpecforgeError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
        source: str | None = None,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected
        self.source: str | None = source


# =============================================================================
# Store Exceptions
# =============================================================================


class StoreError(SpecforgeError):
    """Base exception for entity store operations."""


class EntityIOError(StoreError):
    """Raised when an entity file cannot be read or written.

    Attributes:
        path: Path to the file that caused the error.
        operation: The operation that failed ("read", "write", "delete").
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path,
        operation: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and I/O context.

        Args:
            message: Human-readable error message.
            path: Path to the file that caused the error.
            operation: The operation that failed ("read", "write", "delete").
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.path: Path = path
        self.operation: str = operation
        self.cause: Exception | None = cause


class EntityParseError(StoreError):
    """Raised when a persisted entity document cannot be parsed.

    A parse error means the document exists but is corrupt. It is never
    reported as a missing entity.

    Attributes:
        path: Path to the file that failed to parse, if known.
        line: Line number where the error occurred (if applicable).
        content_type: Type of content being parsed ("yaml", "jsonl", "entity").
        cause: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        content_type: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and parse context.

        Args:
            message: Human-readable error message.
            path: Path to the file that failed to parse.
            line: Line number where the error occurred (if applicable).
            content_type: Type of content being parsed.
            cause: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.content_type: str = content_type
        self.cause: Exception | None = cause


class InvalidIdFormatError(StoreError, ValueError):
    """Raised when an identifier does not match the format for its type.

    Attributes:
        entity_id: The malformed identifier.
        entity_type: The entity or sub-item type the identifier was checked against.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: str,
        entity_type: str | None = None,
    ) -> None:
        """Initialize with error message and identifier context."""
        super().__init__(message)
        self.entity_id: str = entity_id
        self.entity_type: str | None = entity_type


class UnknownEntityTypeError(StoreError, ValueError):
    """Raised when an operation receives an entity type it does not know.

    Attributes:
        entity_type: The unrecognized type name.
    """

    def __init__(self, message: str, *, entity_type: str) -> None:
        """Initialize with error message and the offending type."""
        super().__init__(message)
        self.entity_type: str = entity_type


class EntityValidationError(StoreError, ValueError):
    """Raised when an entity document fails schema validation.

    Attributes:
        entity_id: The identifier of the entity (if known).
        errors: Flattened field errors in "path: message" form.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        """Initialize with error message and field errors."""
        super().__init__(message)
        self.entity_id: str | None = entity_id
        self.errors: list[str] = errors if errors is not None else []


class AlreadySupersededError(StoreError, ValueError):
    """Raised when superseding an item that already has a successor.

    Attributes:
        item_id: The item that was asked to be superseded.
        superseded_by: The identifier of the existing successor.
    """

    def __init__(self, message: str, *, item_id: str, superseded_by: str) -> None:
        """Initialize with error message and lineage context."""
        super().__init__(message)
        self.item_id: str = item_id
        self.superseded_by: str = superseded_by


class SubItemNotFoundError(StoreError, KeyError):
    """Raised when a sub-item cannot be found within its collection.

    Attributes:
        item_id: The identifier that was not found.
    """

    def __init__(self, message: str, *, item_id: str) -> None:
        """Initialize with error message and item context."""
        super().__init__(message)
        self.item_id: str = item_id

    def __str__(self) -> str:
        """Return the message without KeyError's quoting."""
        return str(self.args[0]) if self.args else ""


class BatchWriteError(StoreError):
    """Raised when a transactional batch write fails and is rolled back.

    Attributes:
        cause: The underlying exception that aborted the batch.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        """Initialize with error message and the aborting cause."""
        super().__init__(message)
        self.cause: Exception | None = cause
