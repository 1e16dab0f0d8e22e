"""Enumeration types for specforge."""

from enum import StrEnum


class EntityType(StrEnum):
    """Top-level specification document types."""

    REQUIREMENT = "requirement"
    PLAN = "plan"
    APP = "app"
    SERVICE = "service"
    LIBRARY = "library"
    CONSTITUTION = "constitution"
    DECISION = "decision"


class SubItemKind(StrEnum):
    """Versioned item types owned by a single entity."""

    CRITERIA = "criteria"
    TASK = "task"
    TEST_CASE = "test_case"
    API_CONTRACT = "api_contract"
    DATA_MODEL = "data_model"
    FLOW = "flow"
    STEP = "step"


class HistoryEvent(StrEnum):
    """Change events recorded in the history log."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    BATCH_CREATED = "batch_created"
    BATCH_UPDATED = "batch_updated"
    ITEM_SUPERSEDED = "item_superseded"


class SortOrder(StrEnum):
    """Sort direction for entity listings."""

    ASC = "asc"
    DESC = "desc"


COMPONENT_TYPES: frozenset[EntityType] = frozenset(
    {EntityType.APP, EntityType.SERVICE, EntityType.LIBRARY}
)
