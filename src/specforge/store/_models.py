"""Schema models for specification entities and their sub-items.

This module defines the pydantic models that describe every persisted
entity type and the versioned sub-items they own. The models are the schema
collaborator of the store: ``validate_document`` turns a raw document into a
typed entity or raises with flattened ``"path: message"`` field errors.

Unknown fields are ignored during validation, so stale or foreign keys in a
document are stripped rather than rejected. The entity identifier is derived
from ``type``, ``number`` and ``slug`` and is never read from input.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Final, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    computed_field,
)

from specforge.enums import COMPONENT_TYPES, EntityType, SubItemKind
from specforge.exceptions import EntityValidationError, UnknownEntityTypeError
from specforge.store._ids import generate_id
from specforge.store._slugs import MAX_SLUG_LENGTH

# =============================================================================
# Identifier Patterns
# =============================================================================

_SLUG = r"[a-z0-9]+(?:-[a-z0-9]+)*"
_NUM = r"\d{3,}"

RequirementId = Annotated[str, StringConstraints(pattern=rf"^req-{_NUM}-{_SLUG}$")]
PlanId = Annotated[str, StringConstraints(pattern=rf"^pln-{_NUM}-{_SLUG}$")]
ComponentId = Annotated[
    str, StringConstraints(pattern=rf"^(?:app|svc|lib)-{_NUM}-{_SLUG}$")
]
DecisionId = Annotated[str, StringConstraints(pattern=rf"^dec-{_NUM}-{_SLUG}$")]
CriterionId = Annotated[
    str, StringConstraints(pattern=rf"^(?:req-{_NUM}-{_SLUG}/)?crit-{_NUM}$")
]
CriterionRef = Annotated[
    str, StringConstraints(pattern=rf"^req-{_NUM}-{_SLUG}/crit-{_NUM}$")
]
ArticleId = Annotated[str, StringConstraints(pattern=rf"^art-{_NUM}$")]
ArticleRef = Annotated[
    str, StringConstraints(pattern=rf"^con-{_NUM}-{_SLUG}/art-{_NUM}$")
]
TaskId = Annotated[str, StringConstraints(pattern=rf"^task-{_NUM}$")]
TestCaseId = Annotated[str, StringConstraints(pattern=rf"^tc-{_NUM}$")]
ApiContractId = Annotated[str, StringConstraints(pattern=rf"^api-{_NUM}$")]
DataModelId = Annotated[str, StringConstraints(pattern=rf"^dm-{_NUM}$")]
FlowId = Annotated[str, StringConstraints(pattern=rf"^flow-{_NUM}$")]
StepId = Annotated[str, StringConstraints(pattern=rf"^step-{_NUM}$")]

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


# =============================================================================
# Value Enums
# =============================================================================


class RequirementPriority(StrEnum):
    """Requirement priority levels."""

    CRITICAL = "critical"
    REQUIRED = "required"
    IDEAL = "ideal"
    OPTIONAL = "optional"


class Priority(StrEnum):
    """Priority levels for plans and tasks."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CriterionStatus(StrEnum):
    """Acceptance criterion review status."""

    NEEDS_REVIEW = "needs-review"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ConstitutionStatus(StrEnum):
    """Constitution lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class DecisionStatus(StrEnum):
    """Architecture decision status."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DEPRECATED = "deprecated"
    SUPERSEDED = "superseded"


class ReferenceKind(StrEnum):
    """Kinds of external references."""

    URL = "url"
    DOCUMENTATION = "documentation"
    FILE = "file"
    CODE = "code"
    OTHER = "other"


class FileAction(StrEnum):
    """Actions a task performs on a file."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


# =============================================================================
# Shared Structures
# =============================================================================


class _Schema(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")


class Reference(_Schema):
    """External reference attached to an entity or task."""

    type: ReferenceKind = Field(description="The type of reference.")
    name: NonEmptyStr = Field(description="Short descriptive name.")
    description: NonEmptyStr = Field(description="What the reference contains.")
    importance: Priority = Field(default=Priority.MEDIUM)
    url: str | None = None
    path: str | None = None
    library: str | None = None
    search_term: str | None = None
    code: str | None = None
    language: str | None = None


class ScopeItem(_Schema):
    """A single in-scope or out-of-scope item."""

    description: NonEmptyStr
    priority: str | None = None
    rationale: str | None = None


class Scope(_Schema):
    """Scope boundaries of a plan."""

    in_scope: list[ScopeItem] = Field(default_factory=list)
    out_of_scope: list[ScopeItem] = Field(default_factory=list)
    boundaries: list[NonEmptyStr] = Field(default_factory=list)
    assumptions: list[NonEmptyStr] = Field(default_factory=list)
    constraints: list[NonEmptyStr] = Field(default_factory=list)
    notes: list[NonEmptyStr] = Field(default_factory=list)


# =============================================================================
# Sub-items
# =============================================================================


class SubItem(_Schema):
    """Base for versioned items owned by a single entity.

    Attributes:
        id: Item-local identifier (e.g. ``task-001``).
        supersedes: Id of the item this one replaces.
        superseded_by: Id of the item that replaced this one.
        superseded_at: When this item was superseded.
    """

    kind: ClassVar[SubItemKind]

    id: str
    supersedes: str | None = None
    superseded_by: str | None = None
    superseded_at: datetime | None = None


class Criterion(SubItem):
    """Acceptance criterion of a requirement."""

    kind: ClassVar[SubItemKind] = SubItemKind.CRITERIA

    id: CriterionId
    description: NonEmptyStr
    status: CriterionStatus = CriterionStatus.NEEDS_REVIEW


class TaskFile(_Schema):
    """A file a task creates, modifies or deletes."""

    path: Annotated[str, StringConstraints(pattern=r"^[\w\-./]+$")]
    action: FileAction
    action_description: str | None = None
    applied: bool = False


class BlockedEntry(_Schema):
    """Record of a task being blocked by other tasks."""

    reason: NonEmptyStr
    blocked_by: list[TaskId] = Field(default_factory=list)
    blocked_at: datetime | None = None


class Task(SubItem):
    """Unit of implementation work inside a plan."""

    kind: ClassVar[SubItemKind] = SubItemKind.TASK

    id: TaskId
    priority: Priority = Priority.MEDIUM
    depends_on: list[TaskId] = Field(default_factory=list)
    description: NonEmptyStr
    considerations: list[str] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    files: list[TaskFile] = Field(default_factory=list)
    completed: bool = False
    completed_at: datetime | None = None
    verified: bool = False
    verified_at: datetime | None = None
    notes: list[str] = Field(default_factory=list)
    blocked: list[BlockedEntry] = Field(default_factory=list)


class FlowStep(_Schema):
    """A step inside a flow."""

    id: StepId
    name: NonEmptyStr
    description: str | None = None
    next_steps: list[StepId] = Field(default_factory=list)


class Flow(SubItem):
    """User, system or data flow described by a plan."""

    kind: ClassVar[SubItemKind] = SubItemKind.FLOW

    id: FlowId
    type: str = "user"
    name: NonEmptyStr
    description: str | None = None
    steps: list[FlowStep] = Field(default_factory=list)


class TestCase(SubItem):
    """Test case verifying a plan."""

    __test__: ClassVar[bool] = False

    kind: ClassVar[SubItemKind] = SubItemKind.TEST_CASE

    id: TestCaseId
    name: NonEmptyStr
    description: NonEmptyStr
    steps: list[NonEmptyStr] = Field(default_factory=list)
    expected_result: NonEmptyStr
    implemented: bool = False
    passing: bool = False
    components: list[ComponentId] = Field(default_factory=list)
    related_flows: list[FlowId] = Field(default_factory=list)


class ApiContract(SubItem):
    """API contract exposed or consumed by a plan."""

    kind: ClassVar[SubItemKind] = SubItemKind.API_CONTRACT

    id: ApiContractId
    name: NonEmptyStr
    description: NonEmptyStr
    contract_type: str = "rest"
    specification: str = ""
    examples: list[str] = Field(default_factory=list)


class DataField(_Schema):
    """A field of a data model."""

    name: NonEmptyStr
    type: NonEmptyStr
    description: str = ""
    required: bool = True


class DataModelRelationship(_Schema):
    """Relationship from one data model to another."""

    target: DataModelId
    kind: str = "references"
    description: str = ""


class DataModel(SubItem):
    """Data model defined by a plan."""

    kind: ClassVar[SubItemKind] = SubItemKind.DATA_MODEL

    id: DataModelId
    name: NonEmptyStr
    description: NonEmptyStr
    format: str = "json-schema"
    definition: str = ""
    fields: list[DataField] = Field(default_factory=list)
    relationships: list[DataModelRelationship] = Field(default_factory=list)


class Article(_Schema):
    """Article of a constitution."""

    id: ArticleId
    title: NonEmptyStr
    principle: NonEmptyStr
    rationale: NonEmptyStr
    examples: list[str] = Field(default_factory=list)
    exceptions: list[str] = Field(default_factory=list)


class Amendment(_Schema):
    """Recorded change to a constitution article."""

    id: Annotated[str, StringConstraints(pattern=rf"^amd-{_NUM}$")]
    article_id: ArticleId
    change_description: NonEmptyStr
    reason: NonEmptyStr
    amended_by: list[str] = Field(default_factory=list)
    amended_at: datetime | None = None


class Consequences(_Schema):
    """Outcomes of an architecture decision."""

    positive: list[str] = Field(default_factory=list)
    negative: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    mitigation: list[str] = Field(default_factory=list)


# =============================================================================
# Entities
# =============================================================================


class Entity(_Schema):
    """Fields common to every top-level specification entity."""

    type: EntityType
    number: int = Field(ge=0, description="Sequence number, unique per type.")
    slug: str = Field(
        pattern=rf"^{_SLUG}$",
        max_length=MAX_SLUG_LENGTH,
        description="Canonical slug.",
    )
    name: NonEmptyStr
    description: NonEmptyStr
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        """The derived ``prefix-NNN-slug`` identifier."""
        return generate_id(self.type, self.number, self.slug)


class Requirement(Entity):
    """Business requirement with acceptance criteria."""

    type: Literal["requirement"] = "requirement"  # pyright: ignore[reportIncompatibleVariableOverride]
    priority: RequirementPriority = RequirementPriority.REQUIRED
    criteria: list[Criterion] = Field(min_length=1)


class Plan(Entity):
    """Implementation plan, optionally fulfilling a requirement criterion."""

    type: Literal["plan"] = "plan"  # pyright: ignore[reportIncompatibleVariableOverride]
    criteria_id: CriterionRef | None = None
    priority: Priority = Priority.MEDIUM
    acceptance_criteria: str = ""
    scope: Scope = Field(default_factory=Scope)
    depends_on: list[PlanId] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    flows: list[Flow] = Field(default_factory=list)
    test_cases: list[TestCase] = Field(default_factory=list)
    api_contracts: list[ApiContract] = Field(default_factory=list)
    data_models: list[DataModel] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    completed: bool = False
    completed_at: datetime | None = None
    approved: bool = False


class Component(Entity):
    """Fields shared by apps, services and libraries."""

    folder: str = "."
    depends_on: list[ComponentId] = Field(default_factory=list)
    external_dependencies: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)


class App(Component):
    """Deployable application."""

    type: Literal["app"] = "app"  # pyright: ignore[reportIncompatibleVariableOverride]
    deployment_targets: list[str] = Field(default_factory=list)
    environments: list[str] = Field(default_factory=list)


class Service(Component):
    """Long-running backend service."""

    type: Literal["service"] = "service"  # pyright: ignore[reportIncompatibleVariableOverride]
    dev_port: int | None = Field(default=None, ge=1, le=65535)


class Library(Component):
    """Reusable library."""

    type: Literal["library"] = "library"  # pyright: ignore[reportIncompatibleVariableOverride]
    package_name: str | None = None


class Constitution(Entity):
    """Set of governing principles (articles) for a project."""

    type: Literal["constitution"] = "constitution"  # pyright: ignore[reportIncompatibleVariableOverride]
    articles: list[Article] = Field(min_length=1)
    amendments: list[Amendment] = Field(default_factory=list)
    applies_to: list[str] = Field(default_factory=list)
    maintainers: list[str] = Field(default_factory=list)
    review_required: bool = True
    status: ConstitutionStatus = ConstitutionStatus.ACTIVE
    version: str = "1.0.0"


class Decision(Entity):
    """Architecture decision record."""

    type: Literal["decision"] = "decision"  # pyright: ignore[reportIncompatibleVariableOverride]
    decision: str = Field(min_length=20, max_length=500)
    context: str = Field(min_length=20, max_length=1000)
    status: DecisionStatus = DecisionStatus.PROPOSED
    alternatives: list[str] = Field(default_factory=list)
    consequences: Consequences = Field(default_factory=Consequences)
    affects_components: list[ComponentId] = Field(default_factory=list)
    affects_requirements: list[RequirementId] = Field(default_factory=list)
    affects_plans: list[PlanId] = Field(default_factory=list)
    informed_by_articles: list[ArticleRef] = Field(default_factory=list)
    supersedes: DecisionId | None = None
    references: list[Reference] = Field(default_factory=list)


AnyComponent = App | Service | Library
AnyEntity = Requirement | Plan | App | Service | Library | Constitution | Decision

ENTITY_MODELS: Final[dict[EntityType, type[Entity]]] = {
    EntityType.REQUIREMENT: Requirement,
    EntityType.PLAN: Plan,
    EntityType.APP: App,
    EntityType.SERVICE: Service,
    EntityType.LIBRARY: Library,
    EntityType.CONSTITUTION: Constitution,
    EntityType.DECISION: Decision,
}

# Sub-item collections per entity type, keyed by attribute name.
SUB_ITEM_COLLECTIONS: Final[dict[EntityType, dict[str, SubItemKind]]] = {
    EntityType.REQUIREMENT: {"criteria": SubItemKind.CRITERIA},
    EntityType.PLAN: {
        "tasks": SubItemKind.TASK,
        "flows": SubItemKind.FLOW,
        "test_cases": SubItemKind.TEST_CASE,
        "api_contracts": SubItemKind.API_CONTRACT,
        "data_models": SubItemKind.DATA_MODEL,
    },
}


# =============================================================================
# Schema Validation
# =============================================================================


@dataclass(frozen=True, slots=True)
class FieldError:
    """A single schema violation.

    Attributes:
        path: Dotted location of the offending field (empty for the root).
        message: Human-readable description of the violation.
    """

    path: str
    message: str

    def __str__(self) -> str:
        """Render as ``path: message``."""
        return f"{self.path}: {self.message}" if self.path else self.message


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Convert a pydantic validation error into field errors."""
    return [
        FieldError(
            path=".".join(str(part) for part in error["loc"]),
            message=error["msg"],
        )
        for error in exc.errors()
    ]


def model_for(entity_type: EntityType | str) -> type[Entity]:
    """Return the schema model for an entity type.

    Raises:
        UnknownEntityTypeError: If the type is not a known entity type.
    """
    try:
        return ENTITY_MODELS[EntityType(entity_type)]
    except ValueError as e:
        msg = f"Unknown entity type: {entity_type}"
        raise UnknownEntityTypeError(msg, entity_type=str(entity_type)) from e


def validate_document(
    entity_type: EntityType | str,
    document: dict[str, Any],  # pyright: ignore[reportExplicitAny]
) -> AnyEntity:
    """Validate a raw document against the schema for its type.

    Args:
        entity_type: The expected entity type.
        document: The raw document (fields not in the schema are dropped).

    Returns:
        The validated entity.

    Raises:
        UnknownEntityTypeError: If the type is not a known entity type.
        EntityValidationError: If the document violates the schema.
    """
    model = model_for(entity_type)
    data = {**document, "type": str(EntityType(entity_type))}
    try:
        return model.model_validate(data)  # pyright: ignore[reportReturnType]
    except ValidationError as e:
        errors = [str(error) for error in field_errors(e)]
        msg = f"Invalid {entity_type}: {'; '.join(errors)}"
        raise EntityValidationError(
            msg, entity_id=document.get("id"), errors=errors
        ) from e


def entity_to_document(entity: Entity) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Serialize an entity to a JSON-compatible document without its derived id."""
    return entity.model_dump(mode="json", exclude={"id"})


def is_component(entity: Entity) -> bool:
    """Check whether an entity is an app, service or library."""
    return EntityType(entity.type) in COMPONENT_TYPES


__all__ = [
    "ENTITY_MODELS",
    "SUB_ITEM_COLLECTIONS",
    "AnyComponent",
    "AnyEntity",
    "ApiContract",
    "App",
    "Article",
    "BlockedEntry",
    "Component",
    "Consequences",
    "Constitution",
    "ConstitutionStatus",
    "Criterion",
    "CriterionStatus",
    "DataModel",
    "Decision",
    "DecisionStatus",
    "Entity",
    "FieldError",
    "Flow",
    "Library",
    "Plan",
    "Priority",
    "Reference",
    "Requirement",
    "RequirementPriority",
    "Scope",
    "Service",
    "SubItem",
    "Task",
    "TestCase",
    "entity_to_document",
    "field_errors",
    "is_component",
    "model_for",
    "validate_document",
]
