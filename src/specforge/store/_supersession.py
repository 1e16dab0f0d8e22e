"""Append-only versioning of sub-items.

A sub-item is never edited in place once it matters for history: it is
superseded by a new sibling that carries the next id, and the two are linked
through ``supersedes`` and ``superseded_by``. Every reference to the old id
elsewhere in the collection is moved to the new id in the same pass.

The reference-bearing fields of each sub-item kind are listed statically in
``REFERENCE_FIELDS`` rather than discovered by walking arbitrary keys.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from pydantic import BaseModel, ValidationError

from specforge.enums import SubItemKind
from specforge.exceptions import (
    AlreadySupersededError,
    EntityValidationError,
    SubItemNotFoundError,
)
from specforge.store._ids import format_child_id, next_child_number, parse_child_id
from specforge.store._models import SubItem, field_errors

__all__ = [
    "LINEAGE_FIELDS",
    "REFERENCE_FIELDS",
    "ReferencePath",
    "SupersessionResult",
    "get_active_items",
    "get_history",
    "get_latest",
    "is_active",
    "rewrite_references",
    "supersede",
]

LINEAGE_FIELDS: Final = frozenset({"id", "supersedes", "superseded_by", "superseded_at"})


@dataclass(frozen=True, slots=True)
class ReferencePath:
    """Location of a field holding sub-item ids.

    Attributes:
        field: The attribute on the sub-item.
        nested: For a list of structures, the attribute on each element
            (``blocked[].blocked_by`` is ``ReferencePath("blocked", "blocked_by")``).
    """

    field: str
    nested: str | None = None

    def __str__(self) -> str:
        """Render as ``field`` or ``field[].nested``."""
        return f"{self.field}[].{self.nested}" if self.nested else self.field


REFERENCE_FIELDS: Final[dict[SubItemKind, tuple[ReferencePath, ...]]] = {
    SubItemKind.CRITERIA: (),
    SubItemKind.TASK: (
        ReferencePath("depends_on"),
        ReferencePath("blocked", "blocked_by"),
    ),
    SubItemKind.TEST_CASE: (),
    SubItemKind.API_CONTRACT: (),
    SubItemKind.DATA_MODEL: (ReferencePath("relationships", "target"),),
    SubItemKind.FLOW: (),
    SubItemKind.STEP: (),
}


@dataclass(frozen=True, slots=True)
class SupersessionResult[S: SubItem]:
    """Outcome of superseding one sub-item.

    Attributes:
        items: The full collection after the change, new item last.
        old_item: The superseded item with its lineage pointers set.
        new_item: The replacement item.
    """

    items: list[S]
    old_item: S
    new_item: S


# =============================================================================
# Queries
# =============================================================================


def is_active(item: SubItem) -> bool:
    """Check whether an item has not been superseded."""
    return item.superseded_by is None


def get_active_items[S: SubItem](items: Sequence[S]) -> list[S]:
    """Return the items that have not been superseded."""
    return [item for item in items if is_active(item)]


def _find(items: Sequence[SubItem], item_id: str) -> int | None:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return None


def get_history[S: SubItem](items: Sequence[S], item_id: str) -> list[S]:
    """Return an item's lineage from its root up to the item itself.

    Walks ``supersedes`` backwards and stops quietly at a link that points to
    a missing item.

    Returns:
        Oldest first, ending with ``item_id``; empty if the item is unknown.
    """
    by_id = {item.id: item for item in items}
    current = by_id.get(item_id)
    if current is None:
        return []

    history = [current]
    seen = {current.id}
    while current.supersedes is not None:
        previous = by_id.get(current.supersedes)
        if previous is None or previous.id in seen:
            break
        history.append(previous)
        seen.add(previous.id)
        current = previous

    history.reverse()
    return history


def get_latest[S: SubItem](items: Sequence[S], item_id: str) -> S | None:
    """Follow ``superseded_by`` forward to the current version of an item.

    Stops quietly at a link that points to a missing item.

    Returns:
        The newest reachable version, or None if the item is unknown.
    """
    by_id = {item.id: item for item in items}
    current = by_id.get(item_id)
    if current is None:
        return None

    seen = {current.id}
    while current.superseded_by is not None:
        successor = by_id.get(current.superseded_by)
        if successor is None or successor.id in seen:
            break
        seen.add(successor.id)
        current = successor

    return current


# =============================================================================
# Reference Rewriting
# =============================================================================


def _replace(value: object, old_id: str, new_id: str) -> tuple[object, bool]:
    if isinstance(value, str):
        return (new_id, True) if value == old_id else (value, False)
    if isinstance(value, list):
        replaced = [new_id if element == old_id else element for element in value]
        return replaced, replaced != value
    return value, False


def rewrite_references[S: SubItem](item: S, old_id: str, new_id: str) -> S:
    """Replace every reference to ``old_id`` in an item's reference fields.

    Returns:
        A copy of the item with references moved, or the item itself when it
        does not reference ``old_id``.
    """
    update: dict[str, Any] = {}  # pyright: ignore[reportExplicitAny]
    for path in REFERENCE_FIELDS.get(item.kind, ()):
        value: object = getattr(item, path.field)
        if path.nested is None:
            replaced, changed = _replace(value, old_id, new_id)
            if changed:
                update[path.field] = replaced
            continue

        elements: list[BaseModel] = list(value)  # pyright: ignore[reportArgumentType]
        any_changed = False
        for index, element in enumerate(elements):
            replaced, changed = _replace(getattr(element, path.nested), old_id, new_id)
            if changed:
                elements[index] = element.model_copy(update={path.nested: replaced})
                any_changed = True
        if any_changed:
            update[path.field] = elements

    return item.model_copy(update=update) if update else item


# =============================================================================
# Supersession
# =============================================================================


def _successor_id(old_id: str, number: int) -> str:
    parsed = parse_child_id(old_id)
    if parsed is None:
        msg = f"Cannot derive a successor id from {old_id!r}"
        raise SubItemNotFoundError(msg, item_id=old_id)
    return format_child_id(parsed.prefix, number, parsed.parent_id)


def supersede[S: SubItem](
    items: Sequence[S],
    old_id: str,
    new_data: Mapping[str, Any],  # pyright: ignore[reportExplicitAny]
    *,
    now: datetime | None = None,
) -> SupersessionResult[S]:
    """Replace a sub-item with a new version appended to the collection.

    The new item takes the next id in the collection, copies every field of
    the old item that ``new_data`` does not override, and points back at the
    old item. The old item is kept with ``superseded_by`` and
    ``superseded_at`` set. References to the old id in every other item are
    moved to the new id.

    Args:
        items: The sub-item collection (all of one kind).
        old_id: Id of the item to supersede.
        new_data: Field values for the new version. Lineage fields are ignored.
        now: Supersession timestamp (defaults to the current UTC time).

    Returns:
        The updated collection together with the old and new items.

    Raises:
        SubItemNotFoundError: If ``old_id`` is not in the collection.
        AlreadySupersededError: If the old item already has a successor.
        EntityValidationError: If the new version fails schema validation.
    """
    index = _find(items, old_id)
    if index is None:
        msg = f"{old_id} not found"
        raise SubItemNotFoundError(msg, item_id=old_id)

    old_item = items[index]
    if old_item.superseded_by is not None:
        msg = f"{old_id} has already been superseded by {old_item.superseded_by}"
        raise AlreadySupersededError(
            msg, item_id=old_id, superseded_by=old_item.superseded_by
        )

    timestamp = now if now is not None else datetime.now(UTC)
    new_id = _successor_id(old_id, next_child_number(item.id for item in items))

    data = old_item.model_dump()
    data.update({k: v for k, v in new_data.items() if k not in LINEAGE_FIELDS})
    data.update(id=new_id, supersedes=old_id, superseded_by=None, superseded_at=None)

    try:
        new_item = type(old_item).model_validate(data)
    except ValidationError as e:
        errors = [str(error) for error in field_errors(e)]
        msg = f"Invalid replacement for {old_id}: {'; '.join(errors)}"
        raise EntityValidationError(msg, entity_id=new_id, errors=errors) from e

    superseded = old_item.model_copy(
        update={"superseded_by": new_id, "superseded_at": timestamp}
    )

    updated: list[S] = []
    for position, item in enumerate(items):
        if position == index:
            updated.append(superseded)
        else:
            updated.append(rewrite_references(item, old_id, new_id))
    new_item = rewrite_references(new_item, old_id, new_id)
    updated.append(new_item)

    return SupersessionResult(items=updated, old_item=superseded, new_item=new_item)
