# pyright: reportAny=false, reportExplicitAny=false
"""Entity store for specification documents.

This module provides the EntityStore class, the CRUD layer over persisted
entities. It assigns numbers and slugs, derives identifiers, validates
documents against their schemas, and records changes to an optional history
log. Normal failures (not found, already exists, malformed ids, failed
validation) come back as ``StoreResult`` values. Corrupt documents and
unknown entity types are raised.

Updates are read-merge-write with no locking. Two concurrent updates to the
same id race and the later write wins unless the caller passes
``expected_updated_at``.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final, cast

import anyio.to_thread

from specforge.enums import EntityType, HistoryEvent, SortOrder, SubItemKind
from specforge.exceptions import (
    AlreadySupersededError,
    BatchWriteError,
    EntityIOError,
    EntityParseError,
    EntityValidationError,
    InvalidIdFormatError,
    SubItemNotFoundError,
    UnknownEntityTypeError,
)
from specforge.store._ids import generate_id, qualified_child_id, require_valid_id
from specforge.store._models import (
    SUB_ITEM_COLLECTIONS,
    AnyComponent,
    AnyEntity,
    Constitution,
    Decision,
    Plan,
    Requirement,
    SubItem,
    entity_to_document,
    validate_document,
)
from specforge.store._results import Corpus, ListOptions, StoreResult
from specforge.store._slugs import DEFAULT_SLUG, is_valid_slug, slugify
from specforge.store._storage import WriteOperation
from specforge.store._supersession import supersede
from specforge.utils import create_store_logger, gather

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from specforge.store._history import HistoryLog
    from specforge.store._storage import EntityStorage

__all__ = ["EntityStore", "SupersededItem"]

_IMMUTABLE_FIELDS: Final = frozenset({"id", "type", "number", "slug", "created_at"})

_TYPE_NAMES: Final[dict[EntityType, str]] = {
    EntityType.REQUIREMENT: "Requirement",
    EntityType.PLAN: "Plan",
    EntityType.APP: "Component",
    EntityType.SERVICE: "Component",
    EntityType.LIBRARY: "Component",
    EntityType.CONSTITUTION: "Constitution",
    EntityType.DECISION: "Decision",
}


@dataclass(frozen=True, slots=True)
class SupersededItem:
    """Outcome of superseding a sub-item through the store.

    Attributes:
        entity: The parent entity as persisted after the change.
        new_item: The replacement sub-item.
    """

    entity: AnyEntity
    new_item: SubItem


def _coerce_type(entity_type: EntityType | str) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError as e:
        msg = f"Unknown entity type: {entity_type}"
        raise UnknownEntityTypeError(msg, entity_type=str(entity_type)) from e


def _renumber_criteria(entity_id: str, criteria: Sequence[Any]) -> list[Any]:
    """Give every criterion an id qualified by its parent's final id.

    Entries that are not mappings or criteria are left for schema validation
    to reject.
    """
    renumbered: list[Any] = []
    for n, criterion in enumerate(criteria, start=1):
        if isinstance(criterion, SubItem):
            criterion = criterion.model_dump()
        if isinstance(criterion, Mapping):
            criterion = {
                **cast("Mapping[str, Any]", criterion),
                "id": qualified_child_id(entity_id, SubItemKind.CRITERIA, n),
            }
        renumbered.append(criterion)
    return renumbered


def _compare_values(a: Any, b: Any) -> int:
    """Compare numerically when both values are numbers, else as strings."""
    if isinstance(a, int | float) and isinstance(b, int | float):
        return (a > b) - (a < b)
    sa, sb = str(a), str(b)
    return (sa > sb) - (sa < sb)


def _sort_documents(
    pairs: list[tuple[AnyEntity, dict[str, Any]]], sort_by: str, order: SortOrder
) -> list[tuple[AnyEntity, dict[str, Any]]]:
    direction = -1 if order == SortOrder.DESC else 1

    def compare(
        left: tuple[AnyEntity, dict[str, Any]], right: tuple[AnyEntity, dict[str, Any]]
    ) -> int:
        a, b = left[1].get(sort_by), right[1].get(sort_by)
        # Missing values sort last in either direction.
        if a is None or b is None:
            return (a is None) - (b is None)
        return direction * _compare_values(a, b)

    return sorted(pairs, key=functools.cmp_to_key(compare))


def _matches(document: dict[str, Any], options: ListOptions) -> bool:
    if options.priority and document.get("priority") not in options.priority:
        return False
    if options.status and document.get("status") not in options.status:
        return False
    if options.types and document.get("type") not in options.types:
        return False
    if options.tags and not set(options.tags) & set(document.get("tags", ())):
        return False
    return options.completed is None or document.get("completed") == options.completed


class EntityStore:
    """CRUD operations over persisted specification entities.

    Attributes:
        storage: The persistence collaborator.
        history: Optional change log; changes are recorded when present.
    """

    __slots__: Final = ("_history", "_logger", "_storage")

    _storage: EntityStorage
    _history: HistoryLog | None
    _logger: FilteringBoundLogger

    def __init__(
        self,
        storage: EntityStorage,
        *,
        history: HistoryLog | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the entity store.

        Args:
            storage: The persistence collaborator.
            history: Optional change log.
            logger: Optional logger; defaults to a stderr store logger.
        """
        self._storage = storage
        self._history = history
        self._logger = (
            logger if logger is not None else create_store_logger(component="store")
        )

    @property
    def storage(self) -> EntityStorage:
        """The persistence collaborator."""
        return self._storage

    @property
    def history(self) -> HistoryLog | None:
        """The change log, if any."""
        return self._history

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _record(
        self,
        event: HistoryEvent,
        entity_type: EntityType,
        entity_id: str,
        *,
        summary: str = "",
        changes: tuple[str, ...] = (),
    ) -> None:
        """Append a history entry in a worker thread.

        The entity write has already succeeded when this runs, so a failed
        append is logged instead of failing the mutation.
        """
        if self._history is None:
            return
        record = functools.partial(
            self._history.record,
            event,
            entity_type,
            entity_id,
            summary=summary,
            changes=changes,
        )
        try:
            _ = await anyio.to_thread.run_sync(record)
        except EntityIOError as e:
            self._logger.warning(
                "history_write_failed",
                event=str(event),
                entity_id=entity_id,
                error=str(e),
            )

    async def _load(self, entity_type: EntityType, entity_id: str) -> AnyEntity | None:
        """Read and validate a stored entity.

        Raises:
            EntityParseError: If the document is unreadable or fails its schema.
        """
        document = await self._storage.read_entity(entity_type, entity_id)
        if document is None:
            return None
        try:
            return validate_document(entity_type, document)
        except EntityValidationError as e:
            msg = f"Stored {entity_type} '{entity_id}' is corrupt: {e}"
            raise EntityParseError(msg, content_type="entity", cause=e) from e

    async def _prepare_create(
        self,
        entity_type: EntityType,
        data: Mapping[str, Any],
        number: Any,
        now: datetime,
    ) -> StoreResult[AnyEntity]:
        if isinstance(number, bool) or not isinstance(number, int) or number < 0:
            return StoreResult.fail(f"Invalid number for {entity_type}: {number!r}")

        slug = data.get("slug") or slugify(str(data.get("name") or "")) or DEFAULT_SLUG
        if not isinstance(slug, str) or not is_valid_slug(slug):
            return StoreResult.fail(f"Invalid slug for {entity_type}: {slug!r}")
        entity_id = generate_id(entity_type, number, slug)

        draft = dict(data)
        draft.update(
            type=str(entity_type),
            number=number,
            slug=slug,
            created_at=now,
            updated_at=now,
        )
        criteria = draft.get("criteria")
        if entity_type == EntityType.REQUIREMENT and isinstance(criteria, list):
            draft["criteria"] = _renumber_criteria(entity_id, criteria)

        try:
            entity = validate_document(entity_type, draft)
        except EntityValidationError as e:
            return StoreResult.fail(str(e), e.errors)

        if await self._storage.entity_exists(entity_type, entity.id):
            name = _TYPE_NAMES[entity_type]
            return StoreResult.fail(f"{name} with ID '{entity.id}' already exists")

        return StoreResult.ok(entity)

    async def _prepare_update(
        self,
        entity_type: EntityType,
        entity_id: str,
        patch: Mapping[str, Any],
        now: datetime,
        expected_updated_at: datetime | None = None,
    ) -> StoreResult[AnyEntity]:
        try:
            _ = require_valid_id(entity_type, entity_id)
        except InvalidIdFormatError as e:
            return StoreResult.fail(str(e))

        existing = await self._load(entity_type, entity_id)
        if existing is None:
            return StoreResult.fail(f"Entity with ID '{entity_id}' not found")

        if expected_updated_at is not None and existing.updated_at != expected_updated_at:
            return StoreResult.fail(
                f"Entity '{entity_id}' was modified at "
                f"{existing.updated_at.isoformat()}, expected "
                f"{expected_updated_at.isoformat()}"
            )

        merged = existing.model_dump()
        merged.update({k: v for k, v in patch.items() if k not in _IMMUTABLE_FIELDS})
        merged["updated_at"] = now

        try:
            entity = validate_document(entity_type, merged)
        except EntityValidationError as e:
            return StoreResult.fail(str(e), e.errors)

        return StoreResult.ok(entity)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def create(
        self, entity_type: EntityType | str, data: Mapping[str, Any]
    ) -> StoreResult[AnyEntity]:
        """Create and persist a new entity.

        A missing ``number`` is allocated as the next free number for the
        type and a missing ``slug`` is derived from ``name``. Requirement
        criteria are renumbered as ``<id>/crit-NNN`` so they always match the
        id actually assigned. Fields unknown to the schema are dropped.

        Args:
            entity_type: The type of entity to create.
            data: Field values for the new entity.

        Returns:
            The created entity, or a failure when validation fails or the
            id already exists.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
        """
        etype = _coerce_type(entity_type)
        number = data.get("number")
        if number is None:
            number = await self._storage.next_number(etype)

        prepared = await self._prepare_create(etype, data, number, datetime.now(UTC))
        if not prepared.success or prepared.data is None:
            return prepared

        entity = prepared.data
        await self._storage.write_entity(etype, entity.id, entity_to_document(entity))
        await self._record(HistoryEvent.CREATED, etype, entity.id, summary=entity.name)
        self._logger.info("entity_created", entity_type=str(etype), entity_id=entity.id)
        return prepared

    async def get(
        self, entity_type: EntityType | str, entity_id: str
    ) -> StoreResult[AnyEntity]:
        """Fetch an entity by id.

        Returns:
            The entity, or a failure when the id is malformed or not found.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
            EntityParseError: If the stored document is corrupt.
        """
        etype = _coerce_type(entity_type)
        try:
            _ = require_valid_id(etype, entity_id)
        except InvalidIdFormatError as e:
            return StoreResult.fail(str(e))

        entity = await self._load(etype, entity_id)
        if entity is None:
            name = _TYPE_NAMES[etype]
            return StoreResult.fail(f"{name} with ID '{entity_id}' not found")
        return StoreResult.ok(entity)

    async def list_entities(
        self,
        entity_type: EntityType | str,
        options: ListOptions | None = None,
    ) -> StoreResult[list[AnyEntity]]:
        """List entities of a type with filtering, sorting and paging.

        Every document of the type is loaded, then filtered, then sorted,
        and finally paged.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
            EntityParseError: If any stored document is corrupt.
        """
        etype = _coerce_type(entity_type)
        opts = options if options is not None else ListOptions()

        ids = await self._storage.list_ids(etype)
        loaded = await gather(
            *(functools.partial(self._load, etype, entity_id) for entity_id in ids)
        )

        pairs = [
            (entity, entity.model_dump(mode="json"))
            for entity in loaded
            if entity is not None
        ]
        pairs = [pair for pair in pairs if _matches(pair[1], opts)]
        if opts.sort_by:
            pairs = _sort_documents(pairs, opts.sort_by, opts.sort_order)

        end = opts.offset + opts.limit if opts.limit is not None else None
        return StoreResult.ok([entity for entity, _ in pairs[opts.offset : end]])

    async def update(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        patch: Mapping[str, Any],
        *,
        expected_updated_at: datetime | None = None,
    ) -> StoreResult[AnyEntity]:
        """Merge a patch into an existing entity and persist it.

        Patch fields replace existing values wholesale; nested objects and
        lists are not merged. The id, type, number, slug and creation time
        are preserved and ``updated_at`` is bumped.

        Args:
            entity_type: The entity type.
            entity_id: The entity id.
            patch: Fields to replace.
            expected_updated_at: When given, the update fails unless the
                stored entity still carries this ``updated_at``.

        Returns:
            The updated entity, or a failure.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
            EntityParseError: If the stored document is corrupt.
        """
        etype = _coerce_type(entity_type)
        prepared = await self._prepare_update(
            etype, entity_id, patch, datetime.now(UTC), expected_updated_at
        )
        if not prepared.success or prepared.data is None:
            return prepared

        entity = prepared.data
        await self._storage.write_entity(etype, entity.id, entity_to_document(entity))
        changes = tuple(sorted(k for k in patch if k not in _IMMUTABLE_FIELDS))
        await self._record(HistoryEvent.UPDATED, etype, entity.id, changes=changes)
        self._logger.info(
            "entity_updated", entity_type=str(etype), entity_id=entity.id, changes=changes
        )
        return prepared

    async def delete(self, entity_type: EntityType | str, entity_id: str) -> bool:
        """Delete an entity.

        Returns:
            True if the entity existed and was removed, False otherwise.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
        """
        etype = _coerce_type(entity_type)
        try:
            _ = require_valid_id(etype, entity_id)
        except InvalidIdFormatError:
            return False

        deleted = await self._storage.delete_entity(etype, entity_id)
        if deleted:
            await self._record(HistoryEvent.DELETED, etype, entity_id)
            self._logger.info(
                "entity_deleted", entity_type=str(etype), entity_id=entity_id
            )
        return deleted

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    async def _write_batch(
        self, entity_type: EntityType, entities: Sequence[AnyEntity]
    ) -> StoreResult[list[AnyEntity]]:
        operations = [
            WriteOperation(entity_type, entity.id, entity_to_document(entity))
            for entity in entities
        ]
        try:
            await self._storage.batch_write_with_transaction(operations)
        except BatchWriteError as e:
            return StoreResult.fail(str(e))
        return StoreResult.ok(list(entities))

    async def batch_create(
        self,
        entity_type: EntityType | str,
        items: Sequence[Mapping[str, Any]],
    ) -> StoreResult[list[AnyEntity]]:
        """Create several entities as one all-or-nothing unit.

        Numbers are allocated up front so items without an explicit number
        never collide. Every item is validated before anything is written;
        the first invalid item fails the whole call.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
        """
        etype = _coerce_type(entity_type)
        if not items:
            return StoreResult.ok([])

        explicit = [n for item in items if isinstance(n := item.get("number"), int)]
        next_free = max(await self._storage.next_number(etype), max(explicit, default=0) + 1)
        numbers: list[Any] = []
        for item in items:
            number = item.get("number")
            if number is None:
                number = next_free
                next_free += 1
            numbers.append(number)

        now = datetime.now(UTC)
        prepared = await gather(
            *(
                functools.partial(self._prepare_create, etype, item, number, now)
                for item, number in zip(items, numbers, strict=True)
            )
        )

        entities: list[AnyEntity] = []
        seen: set[str] = set()
        for index, result in enumerate(prepared):
            if not result.success or result.data is None:
                return StoreResult.fail(f"Item {index}: {result.error}", result.errors)
            if result.data.id in seen:
                return StoreResult.fail(
                    f"Item {index}: duplicate ID '{result.data.id}' in batch"
                )
            seen.add(result.data.id)
            entities.append(result.data)

        written = await self._write_batch(etype, entities)
        if written.success:
            for entity in entities:
                await self._record(HistoryEvent.BATCH_CREATED, etype, entity.id)
            self._logger.info(
                "batch_created", entity_type=str(etype), count=len(entities)
            )
        return written

    async def batch_update(
        self,
        entity_type: EntityType | str,
        updates: Sequence[tuple[str, Mapping[str, Any]]],
    ) -> StoreResult[list[AnyEntity]]:
        """Update several entities as one all-or-nothing unit.

        Each id may appear once; a repeated id fails the call before
        anything is read or written.

        Args:
            entity_type: The entity type.
            updates: ``(entity_id, patch)`` pairs.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
            EntityParseError: If a stored document is corrupt.
        """
        etype = _coerce_type(entity_type)
        if not updates:
            return StoreResult.ok([])

        seen: set[str] = set()
        for entity_id, _ in updates:
            if entity_id in seen:
                return StoreResult.fail(f"{entity_id}: duplicate ID in batch")
            seen.add(entity_id)

        now = datetime.now(UTC)
        prepared = await gather(
            *(
                functools.partial(self._prepare_update, etype, entity_id, patch, now)
                for entity_id, patch in updates
            )
        )

        entities: list[AnyEntity] = []
        for (entity_id, _), result in zip(updates, prepared, strict=True):
            if not result.success or result.data is None:
                return StoreResult.fail(f"{entity_id}: {result.error}", result.errors)
            entities.append(result.data)

        written = await self._write_batch(etype, entities)
        if written.success:
            for entity in entities:
                await self._record(HistoryEvent.BATCH_UPDATED, etype, entity.id)
            self._logger.info(
                "batch_updated", entity_type=str(etype), count=len(entities)
            )
        return written

    # -------------------------------------------------------------------------
    # Sub-item supersession
    # -------------------------------------------------------------------------

    async def supersede_item(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        collection: str,
        old_item_id: str,
        new_data: Mapping[str, Any],
    ) -> StoreResult[SupersededItem]:
        """Supersede a sub-item of an entity and persist the entity.

        Args:
            entity_type: The parent entity type.
            entity_id: The parent entity id.
            collection: The sub-item collection, e.g. ``"tasks"``.
            old_item_id: The sub-item to supersede.
            new_data: Field values for the new version.

        Returns:
            The updated entity and the new sub-item, or a failure whose error
            echoes the offending id.

        Raises:
            UnknownEntityTypeError: If the entity type is not known.
            EntityParseError: If the stored document is corrupt.
        """
        etype = _coerce_type(entity_type)
        if collection not in SUB_ITEM_COLLECTIONS.get(etype, {}):
            return StoreResult.fail(f"{etype} has no sub-item collection '{collection}'")

        loaded = await self.get(etype, entity_id)
        if not loaded.success or loaded.data is None:
            return StoreResult.fail(loaded.error or f"Entity '{entity_id}' not found")

        entity = loaded.data
        items: list[SubItem] = getattr(entity, collection)
        now = datetime.now(UTC)
        try:
            result = supersede(items, old_item_id, new_data, now=now)
        except (AlreadySupersededError, SubItemNotFoundError, EntityValidationError) as e:
            return StoreResult.fail(str(e))

        document = entity.model_dump()
        document[collection] = result.items
        document["updated_at"] = now
        try:
            updated = validate_document(etype, document)
        except EntityValidationError as e:
            return StoreResult.fail(str(e), e.errors)

        await self._storage.write_entity(etype, updated.id, entity_to_document(updated))
        summary = f"{old_item_id} superseded by {result.new_item.id}"
        await self._record(
            HistoryEvent.ITEM_SUPERSEDED, etype, updated.id, summary=summary
        )
        self._logger.info(
            "item_superseded",
            entity_id=updated.id,
            old_item_id=old_item_id,
            new_item_id=result.new_item.id,
        )
        return StoreResult.ok(SupersededItem(entity=updated, new_item=result.new_item))

    # -------------------------------------------------------------------------
    # Corpus helpers
    # -------------------------------------------------------------------------

    async def exists(self, entity_type: EntityType | str, entity_id: str) -> bool:
        """Check whether an entity is stored."""
        return await self._storage.entity_exists(_coerce_type(entity_type), entity_id)

    async def count(self, entity_type: EntityType | str) -> int:
        """Count the stored entities of a type."""
        return len(await self._storage.list_ids(_coerce_type(entity_type)))

    async def _list_all(self, entity_type: EntityType) -> list[AnyEntity]:
        result = await self.list_entities(entity_type)
        return result.data if result.data is not None else []

    async def get_all_entities(self) -> Corpus:
        """Load every stored entity, reading each type concurrently.

        Raises:
            EntityParseError: If any stored document is corrupt.
        """
        order = (
            EntityType.REQUIREMENT,
            EntityType.PLAN,
            EntityType.APP,
            EntityType.SERVICE,
            EntityType.LIBRARY,
            EntityType.CONSTITUTION,
            EntityType.DECISION,
        )
        loaded = await gather(
            *(functools.partial(self._list_all, entity_type) for entity_type in order)
        )
        by_type = dict(zip(order, loaded, strict=True))

        return Corpus(
            requirements=tuple(cast("list[Requirement]", by_type[EntityType.REQUIREMENT])),
            plans=tuple(cast("list[Plan]", by_type[EntityType.PLAN])),
            components=tuple(
                cast(
                    "list[AnyComponent]",
                    [
                        *by_type[EntityType.APP],
                        *by_type[EntityType.SERVICE],
                        *by_type[EntityType.LIBRARY],
                    ],
                )
            ),
            constitutions=tuple(
                cast("list[Constitution]", by_type[EntityType.CONSTITUTION])
            ),
            decisions=tuple(cast("list[Decision]", by_type[EntityType.DECISION])),
        )
