"""Result and option types shared by the store and the validation engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Self

from specforge.enums import EntityType, SortOrder

if TYPE_CHECKING:
    from specforge.store._models import (
        AnyComponent,
        AnyEntity,
        Constitution,
        Decision,
        Plan,
        Requirement,
    )


@dataclass(frozen=True, slots=True)
class StoreResult[T]:
    """Outcome of an entity store operation.

    Normal failures (not found, already exists, invalid id, failed validation)
    are reported here instead of being raised.

    Attributes:
        success: Whether the operation succeeded.
        data: The operation's payload on success.
        error: Human-readable error on failure.
        errors: Field-level errors when validation failed.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    errors: tuple[str, ...] = ()

    @classmethod
    def ok(cls, data: T) -> Self:
        """Build a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, errors: Sequence[str] = ()) -> Self:
        """Build a failed result."""
        return cls(success=False, error=error, errors=tuple(errors))


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Aggregated outcome of one or more validation passes.

    Attributes:
        errors: Integrity violations.
        warnings: Advisory findings that do not fail validation.
        timestamp: When the report was produced.
    """

    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def valid(self) -> bool:
        """True when there are no errors."""
        return not self.errors

    @property
    def success(self) -> bool:
        """Alias of ``valid``."""
        return self.valid

    @classmethod
    def of(cls, errors: Sequence[str] = (), warnings: Sequence[str] = ()) -> Self:
        """Build a report from error and warning sequences."""
        return cls(errors=tuple(errors), warnings=tuple(warnings))

    def merge(self, *others: ValidationReport) -> ValidationReport:
        """Union this report with others, keeping order and dropping duplicates."""
        errors = list(self.errors)
        warnings = list(self.warnings)
        for other in others:
            errors.extend(e for e in other.errors if e not in errors)
            warnings.extend(w for w in other.warnings if w not in warnings)
        return ValidationReport(errors=tuple(errors), warnings=tuple(warnings))


@dataclass(frozen=True, slots=True)
class ListOptions:
    """Filtering, sorting and paging options for entity listings.

    Values within one filter are OR-ed; different filters are AND-ed.
    Sorting happens after filtering and paging happens last.

    Attributes:
        priority: Keep entities whose priority is one of these.
        status: Keep entities whose status is one of these.
        types: Keep entities whose type is one of these (useful for components).
        tags: Keep entities carrying at least one of these tags.
        completed: Keep entities whose completion flag matches.
        sort_by: Field name to sort on.
        sort_order: Sort direction.
        offset: Number of entities to skip.
        limit: Maximum number of entities to return.

    Raises:
        ValueError: If offset or limit is negative.
    """

    priority: tuple[str, ...] = ()
    status: tuple[str, ...] = ()
    types: tuple[EntityType, ...] = ()
    tags: tuple[str, ...] = ()
    completed: bool | None = None
    sort_by: str | None = None
    sort_order: SortOrder = SortOrder.ASC
    offset: int = 0
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.offset < 0:
            msg = f"offset must be >= 0, got {self.offset}"
            raise ValueError(msg)
        if self.limit is not None and self.limit < 0:
            msg = f"limit must be >= 0, got {self.limit}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Corpus:
    """Every entity in the store, grouped by category.

    Attributes:
        requirements: All requirements.
        plans: All plans.
        components: All apps, services and libraries.
        constitutions: All constitutions.
        decisions: All decisions.
    """

    requirements: tuple[Requirement, ...] = ()
    plans: tuple[Plan, ...] = ()
    components: tuple[AnyComponent, ...] = ()
    constitutions: tuple[Constitution, ...] = ()
    decisions: tuple[Decision, ...] = ()

    def all_entities(self) -> list[AnyEntity]:
        """Return every entity in category order."""
        return [
            *self.requirements,
            *self.plans,
            *self.components,
            *self.constitutions,
            *self.decisions,
        ]


__all__ = ["Corpus", "ListOptions", "StoreResult", "ValidationReport"]
