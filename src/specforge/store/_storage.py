"""Persistence collaborator for the entity store.

This module defines the ``EntityStorage`` protocol consumed by the entity
store and ``FileEntityStorage``, which keeps one YAML document per entity
under a specs directory:

    <root>/
        requirements/req-001-auth.yml
        plans/pln-001-login.yml
        components/app-001-web.yml, svc-001-api.yml, lib-001-core.yml
        constitutions/con-001-engineering.yml
        decisions/dec-001-use-postgres.yml

Blocking file I/O runs in worker threads so callers can fan out reads with
anyio task groups.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Protocol

import anyio.to_thread

from specforge.enums import EntityType
from specforge.exceptions import BatchWriteError, UnknownEntityTypeError
from specforge.store._ids import entity_prefix, next_number
from specforge.store._io import (
    read_text_if_exists,
    read_yaml,
    remove_file,
    write_text_atomic,
    write_yaml_atomic,
)
from specforge.utils import create_store_logger

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

ENTITY_FOLDERS: Final[dict[EntityType, str]] = {
    EntityType.REQUIREMENT: "requirements",
    EntityType.PLAN: "plans",
    EntityType.APP: "components",
    EntityType.SERVICE: "components",
    EntityType.LIBRARY: "components",
    EntityType.CONSTITUTION: "constitutions",
    EntityType.DECISION: "decisions",
}

_DOCUMENT_SUFFIXES: Final = (".yml", ".yaml")


@dataclass(frozen=True, slots=True)
class WriteOperation:
    """A single document write inside a batch.

    Attributes:
        entity_type: Type of the entity being written.
        entity_id: Identifier of the entity being written.
        document: The serialized entity document.
    """

    entity_type: EntityType
    entity_id: str
    document: dict[str, Any]  # pyright: ignore[reportExplicitAny]


class EntityStorage(Protocol):
    """Contract the entity store expects from its persistence layer."""

    async def read_entity(
        self, entity_type: EntityType, entity_id: str
    ) -> dict[str, Any] | None:  # pyright: ignore[reportExplicitAny]
        """Return the stored document, None if absent; raise if corrupt."""
        ...

    async def write_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        document: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    ) -> None:
        """Persist a document, replacing any existing one."""
        ...

    async def list_ids(self, entity_type: EntityType) -> list[str]:
        """Return the identifiers of every stored entity of a type."""
        ...

    async def delete_entity(self, entity_type: EntityType, entity_id: str) -> bool:
        """Remove a document, returning whether it existed."""
        ...

    async def entity_exists(self, entity_type: EntityType, entity_id: str) -> bool:
        """Check whether a document is stored."""
        ...

    async def next_number(self, entity_type: EntityType) -> int:
        """Return the next free sequence number for a type."""
        ...

    async def batch_write_with_transaction(
        self, operations: Sequence[WriteOperation]
    ) -> None:
        """Write every operation or none of them."""
        ...


def _folder_for(entity_type: EntityType | str) -> str:
    try:
        return ENTITY_FOLDERS[EntityType(entity_type)]
    except ValueError as e:
        msg = f"Unknown entity type: {entity_type}"
        raise UnknownEntityTypeError(msg, entity_type=str(entity_type)) from e


class FileEntityStorage:
    """YAML-file backed entity storage.

    Attributes:
        root: The specs directory holding one folder per entity category.
    """

    __slots__: Final = ("_logger", "_root")

    _root: Path
    _logger: FilteringBoundLogger

    def __init__(
        self,
        root: Path,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the storage.

        Args:
            root: The specs directory. It is created lazily on first write.
            logger: Optional logger; defaults to a stderr store logger.
        """
        self._root = root
        self._logger = (
            logger if logger is not None else create_store_logger(component="storage")
        )

    @property
    def root(self) -> Path:
        """The specs directory."""
        return self._root

    def entity_path(self, entity_type: EntityType, entity_id: str) -> Path:
        """Return the document path for an entity.

        An existing ``.yaml`` document is used when there is no ``.yml`` one.
        New documents are written as ``.yml``.
        """
        folder = self._root / _folder_for(entity_type)
        for suffix in _DOCUMENT_SUFFIXES:
            path = folder / f"{entity_id}{suffix}"
            if path.is_file():
                return path
        return folder / f"{entity_id}{_DOCUMENT_SUFFIXES[0]}"

    async def _resolve(self, entity_type: EntityType, entity_id: str) -> Path:
        return await anyio.to_thread.run_sync(self.entity_path, entity_type, entity_id)

    async def ensure_directory_structure(self) -> None:
        """Create every category folder under the root."""

        def _mkdirs() -> None:
            for folder in sorted(set(ENTITY_FOLDERS.values())):
                (self._root / folder).mkdir(parents=True, exist_ok=True)

        await anyio.to_thread.run_sync(_mkdirs)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def read_entity(
        self, entity_type: EntityType, entity_id: str
    ) -> dict[str, Any] | None:  # pyright: ignore[reportExplicitAny]
        """Read an entity document.

        Raises:
            EntityParseError: If the document exists but is corrupt.
        """
        path = await self._resolve(entity_type, entity_id)
        return await anyio.to_thread.run_sync(read_yaml, path)

    async def entity_exists(self, entity_type: EntityType, entity_id: str) -> bool:
        """Check whether an entity document exists."""
        path = await self._resolve(entity_type, entity_id)
        return await anyio.to_thread.run_sync(path.is_file)

    async def list_ids(self, entity_type: EntityType) -> list[str]:
        """List entity ids of a type, sorted by file name.

        Component types share one folder and are told apart by id prefix.
        """
        folder = self._root / _folder_for(entity_type)
        prefix = f"{entity_prefix(entity_type)}-"

        def _scan() -> list[str]:
            if not folder.is_dir():
                return []
            stems = {
                path.stem
                for path in folder.iterdir()
                if path.is_file()
                and path.suffix in _DOCUMENT_SUFFIXES
                and path.stem.startswith(prefix)
            }
            return sorted(stems)

        return await anyio.to_thread.run_sync(_scan)

    async def next_number(self, entity_type: EntityType) -> int:
        """Return one past the highest stored number for the type."""
        return next_number(await self.list_ids(entity_type), entity_type)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def write_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        document: dict[str, Any],  # pyright: ignore[reportExplicitAny]
    ) -> None:
        """Write an entity document atomically."""
        path = await self._resolve(entity_type, entity_id)
        await anyio.to_thread.run_sync(write_yaml_atomic, path, document)
        self._logger.debug(
            "entity_written", entity_type=str(entity_type), entity_id=entity_id
        )

    async def delete_entity(self, entity_type: EntityType, entity_id: str) -> bool:
        """Delete every document stored under the id, returning whether one existed."""
        folder = self._root / _folder_for(entity_type)

        def _remove() -> bool:
            removed = [
                remove_file(folder / f"{entity_id}{suffix}")
                for suffix in _DOCUMENT_SUFFIXES
            ]
            return any(removed)

        return await anyio.to_thread.run_sync(_remove)

    async def batch_write_with_transaction(
        self, operations: Sequence[WriteOperation]
    ) -> None:
        """Write a batch of documents as one unit.

        Every target file is snapshotted before the first write. If any write
        fails, files that existed are restored and files the batch created
        are removed.

        Raises:
            BatchWriteError: If a write failed and the batch was rolled back.
        """
        await anyio.to_thread.run_sync(partial(self._write_batch, list(operations)))

    def _write_batch(self, operations: list[WriteOperation]) -> None:
        paths = [self.entity_path(op.entity_type, op.entity_id) for op in operations]
        snapshots = [(path, read_text_if_exists(path)) for path in paths]

        try:
            for path, op in zip(paths, operations, strict=True):
                write_yaml_atomic(path, op.document)
        except Exception as e:
            for path, previous in snapshots:
                if previous is None:
                    _ = remove_file(path)
                else:
                    write_text_atomic(path, previous)
            self._logger.warning(
                "batch_rolled_back", operations=len(operations), error=str(e)
            )
            msg = f"Batch write failed and was rolled back: {e}"
            raise BatchWriteError(msg, cause=e) from e

        self._logger.info("batch_written", operations=len(operations))


__all__ = [
    "ENTITY_FOLDERS",
    "EntityStorage",
    "FileEntityStorage",
    "WriteOperation",
]
