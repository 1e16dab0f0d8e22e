"""ID generation and parsing utilities for specification entities.

This module builds and parses the canonical ``prefix-NNN-slug`` identifiers
for top-level entities, and the ``prefix-NNN`` identifiers of sub-items
owned by an entity (tasks, criteria, test cases, and so on).
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from specforge.enums import EntityType, SubItemKind
from specforge.exceptions import InvalidIdFormatError, UnknownEntityTypeError

# =============================================================================
# Constants
# =============================================================================

ID_DIGITS: Final = 3

ENTITY_PREFIXES: Final[dict[EntityType, str]] = {
    EntityType.REQUIREMENT: "req",
    EntityType.PLAN: "pln",
    EntityType.APP: "app",
    EntityType.SERVICE: "svc",
    EntityType.LIBRARY: "lib",
    EntityType.CONSTITUTION: "con",
    EntityType.DECISION: "dec",
}

SUB_ITEM_PREFIXES: Final[dict[SubItemKind, str]] = {
    SubItemKind.CRITERIA: "crit",
    SubItemKind.TASK: "task",
    SubItemKind.TEST_CASE: "tc",
    SubItemKind.API_CONTRACT: "api",
    SubItemKind.DATA_MODEL: "dm",
    SubItemKind.FLOW: "flow",
    SubItemKind.STEP: "step",
}

ARTICLE_PREFIX: Final = "art"

_PREFIX_TO_TYPE: Final[dict[str, EntityType]] = {
    prefix: entity_type for entity_type, prefix in ENTITY_PREFIXES.items()
}

_SLUG_PATTERN: Final = r"[a-z0-9]+(?:-[a-z0-9]+)*"

_ENTITY_ID_RE: Final = re.compile(
    rf"^({'|'.join(ENTITY_PREFIXES.values())})-(\d{{{ID_DIGITS},}})-({_SLUG_PATTERN})$"
)

_CHILD_PREFIXES: Final = (*SUB_ITEM_PREFIXES.values(), ARTICLE_PREFIX)

_CHILD_ID_RE: Final = re.compile(
    rf"^(?:(?P<parent>[a-z]+-\d{{{ID_DIGITS},}}-{_SLUG_PATTERN})/)?"
    rf"(?P<prefix>{'|'.join(_CHILD_PREFIXES)})-(?P<number>\d{{{ID_DIGITS},}})$"
)


# =============================================================================
# Dataclasses
# =============================================================================


@dataclass(frozen=True, slots=True)
class ParsedId:
    """Parsed components of an entity identifier.

    Attributes:
        entity_type: The entity type the prefix maps to.
        number: The sequence number.
        slug: The canonical slug.
    """

    entity_type: EntityType
    number: int
    slug: str


@dataclass(frozen=True, slots=True)
class ParsedChildId:
    """Parsed components of a sub-item identifier.

    Attributes:
        prefix: The sub-item prefix (e.g., "task", "crit").
        number: The sequence number.
        parent_id: The owning entity id for qualified ids such as
            ``req-001-auth/crit-001``, otherwise None.
    """

    prefix: str
    number: int
    parent_id: str | None = None


# =============================================================================
# Helpers
# =============================================================================


def _format_number(number: int) -> str:
    """Format a number with zero-padding to the configured digit count."""
    return str(number).zfill(ID_DIGITS)


def entity_prefix(entity_type: EntityType | str) -> str:
    """Return the identifier prefix for an entity type.

    Args:
        entity_type: The entity type (enum or its string value).

    Returns:
        The short prefix, e.g. "req" for requirements.

    Raises:
        UnknownEntityTypeError: If the type is not a known entity type.
    """
    try:
        return ENTITY_PREFIXES[EntityType(entity_type)]
    except ValueError as e:
        msg = f"Unknown entity type: {entity_type}"
        raise UnknownEntityTypeError(msg, entity_type=str(entity_type)) from e


def child_prefix(kind: SubItemKind | str) -> str:
    """Return the identifier prefix for a sub-item kind.

    Plain prefixes (e.g. "task", "art") are accepted and returned unchanged.
    """
    if isinstance(kind, SubItemKind):
        return SUB_ITEM_PREFIXES[kind]
    if kind in _CHILD_PREFIXES:
        return kind
    try:
        return SUB_ITEM_PREFIXES[SubItemKind(kind)]
    except ValueError as e:
        msg = f"Unknown sub-item kind: {kind}"
        raise UnknownEntityTypeError(msg, entity_type=kind) from e


# =============================================================================
# Entity IDs
# =============================================================================


def generate_id(entity_type: EntityType | str, number: int, slug: str) -> str:
    """Build the canonical identifier for an entity.

    Args:
        entity_type: The entity type.
        number: The sequence number (non-negative).
        slug: The canonical slug.

    Returns:
        The identifier in ``prefix-NNN-slug`` form.

    Raises:
        UnknownEntityTypeError: If the entity type is not known.
        ValueError: If the number is negative.
    """
    prefix = entity_prefix(entity_type)
    if number < 0:
        msg = f"Invalid number for {entity_type}: {number}"
        raise ValueError(msg)
    return f"{prefix}-{_format_number(number)}-{slug}"


def parse_id(entity_id: str) -> ParsedId | None:
    """Parse an entity identifier into its components.

    Returns None for malformed input rather than raising.
    """
    match = _ENTITY_ID_RE.match(entity_id)
    if match is None:
        return None
    prefix, number, slug = match.groups()
    return ParsedId(
        entity_type=_PREFIX_TO_TYPE[prefix],
        number=int(number),
        slug=slug,
    )


def entity_type_from_id(entity_id: str) -> EntityType | None:
    """Return the entity type encoded in an identifier, if it parses."""
    parsed = parse_id(entity_id)
    return parsed.entity_type if parsed is not None else None


def is_valid_id(entity_type: EntityType | str, entity_id: str) -> bool:
    """Check whether an identifier is well-formed for the given type."""
    parsed = parse_id(entity_id)
    return parsed is not None and parsed.entity_type == EntityType(entity_type)


def require_valid_id(entity_type: EntityType | str, entity_id: str) -> ParsedId:
    """Parse an identifier, raising if it is malformed for the given type.

    Raises:
        UnknownEntityTypeError: If the entity type is not known.
        InvalidIdFormatError: If the identifier does not match the type's format.
    """
    prefix = entity_prefix(entity_type)
    parsed = parse_id(entity_id)
    if parsed is None or parsed.entity_type != EntityType(entity_type):
        msg = (
            f"Invalid {entity_type} ID format: {entity_id!r} "
            f"(expected {prefix}-NNN-slug)"
        )
        raise InvalidIdFormatError(msg, entity_id=entity_id, entity_type=str(entity_type))
    return parsed


def next_number(existing_ids: Iterable[str], entity_type: EntityType | str) -> int:
    """Return the next sequence number for an entity type.

    Numbers are allocated as one past the highest existing number, so gaps
    left by deletions are never reused.

    Args:
        existing_ids: Identifiers to scan (other types and malformed ids are ignored).
        entity_type: The entity type to allocate for.

    Returns:
        ``max(existing numbers) + 1``, or 1 when none exist.
    """
    target = EntityType(entity_type)
    numbers = [
        parsed.number
        for parsed in (parse_id(entity_id) for entity_id in existing_ids)
        if parsed is not None and parsed.entity_type == target
    ]
    return max(numbers) + 1 if numbers else 1


# =============================================================================
# Sub-item IDs
# =============================================================================


def parse_child_id(item_id: str) -> ParsedChildId | None:
    """Parse a sub-item identifier, qualified or bare.

    Returns None for malformed input.
    """
    match = _CHILD_ID_RE.match(item_id)
    if match is None:
        return None
    return ParsedChildId(
        prefix=match.group("prefix"),
        number=int(match.group("number")),
        parent_id=match.group("parent"),
    )


def generate_child_id(parent_id: str, kind: SubItemKind | str, number: int) -> str:
    """Build a sub-item identifier under a parent.

    Args:
        parent_id: The owning entity id, or an existing sub-item id when
            nesting (e.g. steps under a flow).
        kind: The sub-item kind or its prefix.
        number: The sequence number.

    Returns:
        The identifier in ``prefix-NNN`` form.

    Raises:
        InvalidIdFormatError: If the parent id is malformed.
    """
    if parse_id(parent_id) is None and parse_child_id(parent_id) is None:
        msg = f"Invalid parent ID format: {parent_id!r}"
        raise InvalidIdFormatError(msg, entity_id=parent_id)
    return f"{child_prefix(kind)}-{_format_number(number)}"


def format_child_id(prefix: str, number: int, parent_id: str | None = None) -> str:
    """Build a sub-item identifier from already-validated parts."""
    child_id = f"{prefix}-{_format_number(number)}"
    return f"{parent_id}/{child_id}" if parent_id else child_id


def qualified_child_id(parent_id: str, kind: SubItemKind | str, number: int) -> str:
    """Build a sub-item identifier qualified by its parent entity id.

    Example: ``qualified_child_id("req-001-auth", SubItemKind.CRITERIA, 1)``
    returns ``"req-001-auth/crit-001"``.
    """
    return f"{parent_id}/{generate_child_id(parent_id, kind, number)}"


def next_child_number(item_ids: Iterable[str]) -> int:
    """Return one past the highest numeric suffix among sub-item ids."""
    numbers = [
        parsed.number
        for parsed in (parse_child_id(item_id) for item_id in item_ids)
        if parsed is not None
    ]
    return max(numbers) + 1 if numbers else 1


__all__ = [
    "ARTICLE_PREFIX",
    "ENTITY_PREFIXES",
    "ID_DIGITS",
    "SUB_ITEM_PREFIXES",
    "ParsedChildId",
    "ParsedId",
    "child_prefix",
    "entity_prefix",
    "entity_type_from_id",
    "format_child_id",
    "generate_child_id",
    "generate_id",
    "is_valid_id",
    "next_child_number",
    "next_number",
    "parse_child_id",
    "parse_id",
    "qualified_child_id",
    "require_valid_id",
]
