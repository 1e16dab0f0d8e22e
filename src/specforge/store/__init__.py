"""Entity store, validation and supersession for specification documents.

Example:
    >>> from specforge.store import open_store
    >>> store = open_store()
    >>> result = await store.create(
    ...     "requirement",
    ...     {"name": "Auth", "description": "Users sign in",
    ...      "criteria": [{"id": "crit-001", "description": "Login works"}]},
    ... )
    >>> result.data.id
    'req-001-auth'
"""

from ._analysis import find_orphans, get_blocking_tasks, is_task_blocked
from ._entity_store import EntityStore, SupersededItem
from ._factory import HISTORY_FILENAME, open_store, open_validation_engine
from ._graph import (
    DependencyGraph,
    build_dependency_graph,
    dependency_map,
    detect_cycles,
    format_cycle,
)
from ._history import HistoryEntry, HistoryLog
from ._ids import (
    ENTITY_PREFIXES,
    SUB_ITEM_PREFIXES,
    ParsedChildId,
    ParsedId,
    entity_type_from_id,
    generate_child_id,
    generate_id,
    is_valid_id,
    next_child_number,
    next_number,
    parse_child_id,
    parse_id,
    qualified_child_id,
)
from ._models import (
    ENTITY_MODELS,
    SUB_ITEM_COLLECTIONS,
    AnyComponent,
    AnyEntity,
    ApiContract,
    App,
    Criterion,
    DataModel,
    Constitution,
    Decision,
    Flow,
    Library,
    Plan,
    Requirement,
    Service,
    SubItem,
    Task,
    TestCase,
    validate_document,
)
from ._results import Corpus, ListOptions, StoreResult, ValidationReport
from ._slugs import is_valid_slug, slug_from_title, slugify, unique_slug
from ._storage import EntityStorage, FileEntityStorage, WriteOperation
from ._supersession import (
    REFERENCE_FIELDS,
    ReferencePath,
    SupersessionResult,
    get_active_items,
    get_history,
    get_latest,
    is_active,
    supersede,
)
from ._validation import (
    ReferenceValidator,
    SchemaValidator,
    ValidationEngine,
    Validator,
    ValidatorRegistry,
    WorkflowValidator,
    default_registry,
)

__all__ = [
    "ENTITY_MODELS",
    "ENTITY_PREFIXES",
    "HISTORY_FILENAME",
    "REFERENCE_FIELDS",
    "SUB_ITEM_COLLECTIONS",
    "SUB_ITEM_PREFIXES",
    "AnyComponent",
    "AnyEntity",
    "ApiContract",
    "App",
    "Constitution",
    "Corpus",
    "Criterion",
    "DataModel",
    "Decision",
    "DependencyGraph",
    "EntityStorage",
    "EntityStore",
    "FileEntityStorage",
    "Flow",
    "HistoryEntry",
    "HistoryLog",
    "Library",
    "ListOptions",
    "ParsedChildId",
    "ParsedId",
    "Plan",
    "ReferencePath",
    "ReferenceValidator",
    "Requirement",
    "SchemaValidator",
    "Service",
    "StoreResult",
    "SubItem",
    "SupersededItem",
    "SupersessionResult",
    "Task",
    "TestCase",
    "ValidationEngine",
    "ValidationReport",
    "Validator",
    "ValidatorRegistry",
    "WorkflowValidator",
    "WriteOperation",
    "build_dependency_graph",
    "default_registry",
    "dependency_map",
    "detect_cycles",
    "entity_type_from_id",
    "find_orphans",
    "format_cycle",
    "generate_child_id",
    "generate_id",
    "get_active_items",
    "get_blocking_tasks",
    "get_history",
    "get_latest",
    "is_active",
    "is_task_blocked",
    "is_valid_id",
    "is_valid_slug",
    "next_child_number",
    "next_number",
    "open_store",
    "open_validation_engine",
    "parse_child_id",
    "parse_id",
    "qualified_child_id",
    "slug_from_title",
    "slugify",
    "supersede",
    "unique_slug",
    "validate_document",
]
