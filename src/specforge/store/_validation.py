# pyright: reportAny=false, reportExplicitAny=false
"""Validation engine for the specification corpus.

This module provides pluggable per-entity validators, a name-keyed registry
to hold them, and the ValidationEngine which layers corpus-wide reference
and business-rule checks on top. Every finding is collected into a
``ValidationReport``; nothing here raises on invalid data.

The registry is plain mutable state without locking. Populate it before
running validations concurrently.
"""

from __future__ import annotations

import functools
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

from specforge.enums import EntityType
from specforge.exceptions import EntityValidationError
from specforge.store._graph import (
    build_dependency_graph,
    dependency_map,
    format_cycle,
)
from specforge.store._ids import parse_child_id
from specforge.store._models import (
    SUB_ITEM_COLLECTIONS,
    Decision,
    Plan,
    Priority,
    Requirement,
    RequirementPriority,
    SubItem,
    entity_to_document,
    is_component,
    validate_document,
)
from specforge.store._results import Corpus, ValidationReport
from specforge.utils import create_store_logger, gather

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from specforge.config import ValidationConfig
    from specforge.store._entity_store import EntityStore
    from specforge.store._models import AnyComponent, AnyEntity

__all__ = [
    "ReferenceValidator",
    "SchemaValidator",
    "ValidationEngine",
    "Validator",
    "ValidatorRegistry",
    "WorkflowValidator",
    "criterion_index",
    "default_registry",
]

DEFAULT_MIN_DESCRIPTION_LENGTH: Final = 10


@runtime_checkable
class Validator(Protocol):
    """A pluggable per-entity validator."""

    @property
    def name(self) -> str:
        """Unique registry key."""
        ...

    def supports(self, entity: AnyEntity) -> bool:
        """Whether this validator applies to the entity."""
        ...

    async def validate(self, entity: AnyEntity, corpus: Corpus) -> ValidationReport:
        """Check one entity against the rest of the corpus."""
        ...


class ValidatorRegistry:
    """Ordered, name-keyed collection of validators.

    Registering a name that is already present replaces the validator but
    keeps its original position.
    """

    __slots__: Final = ("_validators",)

    _validators: dict[str, Validator]

    def __init__(self, validators: Iterable[Validator] = ()) -> None:
        """Initialize the registry with optional validators in order."""
        self._validators = {}
        for validator in validators:
            self.register(validator)

    def __len__(self) -> int:
        return len(self._validators)

    def __contains__(self, name: object) -> bool:
        return name in self._validators

    def register(self, validator: Validator) -> None:
        """Add or replace a validator under its name."""
        self._validators[validator.name] = validator

    def remove(self, name: str) -> bool:
        """Remove a validator by name.

        Returns:
            True if a validator was removed.
        """
        return self._validators.pop(name, None) is not None

    def get_validators(self) -> list[Validator]:
        """Return the registered validators in registration order."""
        return list(self._validators.values())

    def clear(self) -> None:
        """Remove every validator."""
        self._validators.clear()


# =============================================================================
# Lookup Helpers
# =============================================================================


def criterion_index(requirements: Iterable[Requirement]) -> dict[str, SubItem]:
    """Map every qualified criterion id to its criterion.

    Bare ``crit-NNN`` ids are qualified with their requirement's id.
    """
    index: dict[str, SubItem] = {}
    for requirement in requirements:
        for criterion in requirement.criteria:
            parsed = parse_child_id(criterion.id)
            qualified = (
                criterion.id
                if parsed is not None and parsed.parent_id
                else f"{requirement.id}/{criterion.id}"
            )
            index[qualified] = criterion
    return index


def _article_ids(corpus: Corpus) -> set[str]:
    return {
        f"{constitution.id}/{article.id}"
        for constitution in corpus.constitutions
        for article in constitution.articles
    }


# =============================================================================
# Built-in Validators
# =============================================================================


class SchemaValidator:
    """Re-check an entity against its schema and its own identifiers."""

    __slots__: Final = ()

    @property
    def name(self) -> str:
        return "schema"

    def supports(self, entity: AnyEntity) -> bool:
        return True

    async def validate(self, entity: AnyEntity, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        try:
            _ = validate_document(entity.type, entity_to_document(entity))
        except EntityValidationError as e:
            errors.extend(f"{entity.id}: {error}" for error in e.errors)

        if isinstance(entity, Requirement):
            for criterion in entity.criteria:
                parsed = parse_child_id(criterion.id)
                if parsed is not None and parsed.parent_id not in (None, entity.id):
                    errors.append(
                        f"Criterion '{criterion.id}' does not belong to "
                        f"requirement '{entity.id}'"
                    )

        return ValidationReport.of(errors)


class ReferenceValidator:
    """Check that an entity's outgoing references resolve."""

    __slots__: Final = ()

    @property
    def name(self) -> str:
        return "references"

    def supports(self, entity: AnyEntity) -> bool:
        return isinstance(entity, Plan | Decision) or is_component(entity)

    async def validate(self, entity: AnyEntity, corpus: Corpus) -> ValidationReport:
        if isinstance(entity, Plan):
            return self._validate_plan(entity, corpus)
        if isinstance(entity, Decision):
            return self._validate_decision(entity, corpus)
        if is_component(entity):
            return self._validate_component(entity, corpus)  # pyright: ignore[reportArgumentType]
        return ValidationReport()

    def _validate_plan(self, plan: Plan, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        plan_ids = {p.id for p in corpus.plans}
        component_ids = {c.id for c in corpus.components}

        if plan.criteria_id:
            criterion = criterion_index(corpus.requirements).get(plan.criteria_id)
            if criterion is None:
                errors.append(
                    f"Plan '{plan.id}' references non-existent criteria "
                    f"'{plan.criteria_id}'"
                )
            elif criterion.superseded_by is not None:
                warnings.append(
                    f"Plan '{plan.id}' references superseded criteria "
                    f"'{plan.criteria_id}' (now '{criterion.superseded_by}')"
                )

        for dep in plan.depends_on:
            if dep == plan.id:
                errors.append(f"Plan cannot depend on itself: {dep}")
            elif dep not in plan_ids:
                errors.append(f"Plan '{plan.id}' depends on non-existent plan '{dep}'")

        task_ids = {task.id for task in plan.tasks}
        for task in plan.tasks:
            for dep in task.depends_on:
                if dep not in task_ids:
                    errors.append(
                        f"Task '{task.id}' in plan '{plan.id}' depends on "
                        f"non-existent task '{dep}'"
                    )
            for entry in task.blocked:
                for blocker in entry.blocked_by:
                    if blocker not in task_ids:
                        errors.append(
                            f"Task '{task.id}' in plan '{plan.id}' is blocked by "
                            f"non-existent task '{blocker}'"
                        )

        for test_case in plan.test_cases:
            for component_id in test_case.components:
                if component_id not in component_ids:
                    errors.append(
                        f"Test case '{test_case.id}' in plan '{plan.id}' references "
                        f"non-existent component '{component_id}'"
                    )

        return ValidationReport.of(errors, warnings)

    def _validate_component(
        self, component: AnyComponent, corpus: Corpus
    ) -> ValidationReport:
        errors: list[str] = []
        component_ids = {c.id for c in corpus.components}
        for dep in component.depends_on:
            if dep == component.id:
                errors.append(f"Component cannot depend on itself: {dep}")
            elif dep not in component_ids:
                errors.append(
                    f"Component '{component.slug}' depends on non-existent "
                    f"component '{dep}'"
                )
        return ValidationReport.of(errors)

    def _validate_decision(self, decision: Decision, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        targets: list[tuple[str, Sequence[str], set[str]]] = [
            ("component", decision.affects_components, {c.id for c in corpus.components}),
            ("requirement", decision.affects_requirements, {r.id for r in corpus.requirements}),
            ("plan", decision.affects_plans, {p.id for p in corpus.plans}),
            ("article", decision.informed_by_articles, _article_ids(corpus)),
        ]
        if decision.supersedes:
            targets.append(
                ("decision", [decision.supersedes], {d.id for d in corpus.decisions})
            )

        for kind, refs, known in targets:
            errors.extend(
                f"Decision '{decision.slug}' references non-existent {kind} '{ref}'"
                for ref in refs
                if ref not in known
            )
        return ValidationReport.of(errors)


class WorkflowValidator:
    """Check sub-item integrity inside requirements and plans.

    Covers supersession links, duplicate sub-item ids, task ordering, and
    flow structure.
    """

    __slots__: Final = ()

    @property
    def name(self) -> str:
        return "workflow"

    def supports(self, entity: AnyEntity) -> bool:
        return EntityType(entity.type) in SUB_ITEM_COLLECTIONS

    async def validate(self, entity: AnyEntity, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []

        for collection in SUB_ITEM_COLLECTIONS[EntityType(entity.type)]:
            items: list[SubItem] = getattr(entity, collection)
            errors.extend(self._check_lineage(entity.id, collection, items))

        if isinstance(entity, Plan):
            self._check_tasks(entity, errors, warnings)
            self._check_flows(entity, errors, warnings)

        return ValidationReport.of(errors, warnings)

    def _check_lineage(
        self, entity_id: str, collection: str, items: Sequence[SubItem]
    ) -> list[str]:
        errors: list[str] = []
        counts = Counter(item.id for item in items)
        errors.extend(
            f"Duplicate id '{item_id}' in {collection} of '{entity_id}'"
            for item_id, count in counts.items()
            if count > 1
        )

        by_id = {item.id: item for item in items}
        for item in items:
            if item.superseded_by is not None:
                successor = by_id.get(item.superseded_by)
                if successor is None:
                    errors.append(
                        f"'{item.id}' in '{entity_id}' is superseded by missing "
                        f"item '{item.superseded_by}'"
                    )
                elif successor.supersedes != item.id:
                    errors.append(
                        f"'{item.superseded_by}' does not record that it "
                        f"supersedes '{item.id}' in '{entity_id}'"
                    )
            if item.supersedes is not None:
                predecessor = by_id.get(item.supersedes)
                if predecessor is not None and predecessor.superseded_by != item.id:
                    errors.append(
                        f"'{item.supersedes}' is not marked as superseded by "
                        f"'{item.id}' in '{entity_id}'"
                    )
        return errors

    def _check_tasks(self, plan: Plan, errors: list[str], warnings: list[str]) -> None:
        tasks = {task.id: task for task in plan.tasks}

        graph = build_dependency_graph(dependency_map(plan.tasks))
        if graph.has_cycles:
            errors.append(
                "Task dependency cycles detected: "
                + ", ".join(format_cycle(cycle) for cycle in graph.cycles)
            )

        for task in plan.tasks:
            if not task.completed:
                continue
            pending = [
                dep
                for dep in task.depends_on
                if dep in tasks and not tasks[dep].completed
            ]
            if pending:
                warnings.append(
                    f"Task '{task.id}' in plan '{plan.id}' is completed but depends "
                    f"on incomplete tasks: {', '.join(pending)}"
                )

    def _check_flows(self, plan: Plan, errors: list[str], warnings: list[str]) -> None:
        tested = {flow_id for tc in plan.test_cases for flow_id in tc.related_flows}

        for flow in plan.flows:
            step_ids = [step.id for step in flow.steps]
            duplicates = sorted(
                step_id for step_id, count in Counter(step_ids).items() if count > 1
            )
            if duplicates:
                errors.append(
                    f"Flow '{flow.id}' has duplicate step IDs: {', '.join(duplicates)}"
                )

            known = set(step_ids)
            targets = {nxt for step in flow.steps for nxt in step.next_steps}
            for step in flow.steps:
                errors.extend(
                    f"Flow '{flow.id}' step '{step.id}' references non-existent "
                    f"step '{nxt}'"
                    for nxt in step.next_steps
                    if nxt not in known
                )

            if flow.steps:
                starts = [step.id for step in flow.steps if step.id not in targets]
                if not starts:
                    errors.append(f"Flow '{flow.id}' has no starting step")
                if not any(not step.next_steps for step in flow.steps):
                    warnings.append(f"Flow '{flow.id}' has no ending step")

                reachable = _reachable(starts, {s.id: s.next_steps for s in flow.steps})
                unreachable = [step_id for step_id in step_ids if step_id not in reachable]
                if starts and unreachable:
                    warnings.append(
                        f"Flow '{flow.id}' has unreachable steps: "
                        f"{', '.join(unreachable)}"
                    )

            if flow.superseded_by is None and flow.id not in tested:
                warnings.append(
                    f"Flow '{flow.id}' in plan '{plan.id}' is not covered by "
                    "any test case"
                )


def _reachable(starts: Sequence[str], edges: dict[str, list[str]]) -> set[str]:
    seen: set[str] = set()
    queue = list(starts)
    while queue:
        node = queue.pop(0)
        if node in seen:
            continue
        seen.add(node)
        queue.extend(edges.get(node, ()))
    return seen


def default_registry() -> ValidatorRegistry:
    """Build a registry holding the built-in validators."""
    return ValidatorRegistry(
        [SchemaValidator(), ReferenceValidator(), WorkflowValidator()]
    )


# =============================================================================
# Validation Engine
# =============================================================================


class ValidationEngine:
    """Validate entities and the corpus as a whole.

    Every public method returns a ``ValidationReport``. Failures while
    loading the corpus or inside a validator are recorded as errors.

    Attributes:
        registry: The validators run by ``validate_entity``.
    """

    __slots__: Final = (
        "_fallback",
        "_logger",
        "_min_description_length",
        "_registry",
        "_store",
    )

    _store: EntityStore
    _registry: ValidatorRegistry
    _min_description_length: int
    _fallback: bool
    _logger: FilteringBoundLogger

    def __init__(
        self,
        store: EntityStore,
        *,
        registry: ValidatorRegistry | None = None,
        config: ValidationConfig | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the validation engine.

        Args:
            store: Source of the corpus.
            registry: Validators to run per entity. Defaults to an empty
                registry, which falls back to reference checks.
            config: Validation settings.
            logger: Optional logger; defaults to a stderr store logger.
        """
        self._store = store
        self._registry = registry if registry is not None else ValidatorRegistry()
        if config is not None:
            self._min_description_length = config.min_description_length
            self._fallback = config.fallback_to_references
        else:
            self._min_description_length = DEFAULT_MIN_DESCRIPTION_LENGTH
            self._fallback = True
        self._logger = (
            logger if logger is not None else create_store_logger(component="validation")
        )

    @property
    def registry(self) -> ValidatorRegistry:
        """The validators run by ``validate_entity``."""
        return self._registry

    def _failure(self, operation: str, exc: Exception) -> ValidationReport:
        self._logger.error("validation_failed", operation=operation, error=str(exc))
        return ValidationReport.of([f"{operation} failed: {exc}"])

    # -------------------------------------------------------------------------
    # Per-entity validation
    # -------------------------------------------------------------------------

    async def validate_entity(
        self, entity: AnyEntity, corpus: Corpus | None = None
    ) -> ValidationReport:
        """Run every registered validator that supports the entity.

        With no validators registered, reference checks run instead (unless
        disabled in the configuration).

        Args:
            entity: The entity to check.
            corpus: The corpus to check against; loaded from the store when
                omitted.
        """
        try:
            if corpus is None:
                corpus = await self._store.get_all_entities()

            validators = self._registry.get_validators()
            if not validators and self._fallback:
                validators = [ReferenceValidator()]

            report = ValidationReport()
            for validator in validators:
                if validator.supports(entity):
                    report = report.merge(await validator.validate(entity, corpus))
        except Exception as e:  # noqa: BLE001
            return self._failure(f"Validation of {entity.id}", e)
        return report

    async def validate_all(self) -> ValidationReport:
        """Validate every entity in the store concurrently."""
        try:
            corpus = await self._store.get_all_entities()
            reports = await gather(
                *(
                    functools.partial(self.validate_entity, entity, corpus)
                    for entity in corpus.all_entities()
                )
            )
        except Exception as e:  # noqa: BLE001
            return self._failure("Entity validation", e)
        return ValidationReport().merge(*reports)

    # -------------------------------------------------------------------------
    # Corpus-wide checks
    # -------------------------------------------------------------------------

    async def validate_references(self) -> ValidationReport:
        """Check that plan and component links resolve across the corpus."""
        try:
            corpus = await self._store.get_all_entities()
            return self._check_references(corpus)
        except Exception as e:  # noqa: BLE001
            return self._failure("Reference validation", e)

    def _check_references(self, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        plan_ids = {plan.id for plan in corpus.plans}
        component_ids = {component.id for component in corpus.components}
        criteria = criterion_index(corpus.requirements)

        for plan in corpus.plans:
            errors.extend(
                f"Plan '{plan.slug}' depends on non-existent plan '{dep}'"
                for dep in plan.depends_on
                if dep not in plan_ids
            )
            if plan.criteria_id and plan.criteria_id not in criteria:
                errors.append(
                    f"Plan '{plan.slug}' references non-existent criteria "
                    f"'{plan.criteria_id}'"
                )

        for component in corpus.components:
            errors.extend(
                f"Component '{component.slug}' depends on non-existent "
                f"component '{dep}'"
                for dep in component.depends_on
                if dep not in component_ids
            )

        return ValidationReport.of(errors)

    async def validate_business_rules(self) -> ValidationReport:
        """Run advisory checks and the component cycle scan."""
        try:
            corpus = await self._store.get_all_entities()
            return self._check_business_rules(corpus)
        except Exception as e:  # noqa: BLE001
            return self._failure("Business rule validation", e)

    def _check_business_rules(self, corpus: Corpus) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        plans = corpus.plans

        if not any(r.priority == RequirementPriority.CRITICAL for r in corpus.requirements):
            warnings.append(
                "No critical requirements defined - consider marking important "
                "requirements as critical"
            )

        linked = {plan.criteria_id for plan in plans if plan.criteria_id}
        criteria = criterion_index(corpus.requirements)
        for requirement in corpus.requirements:
            own = {cid for cid in criteria if cid.startswith(f"{requirement.id}/")}
            if not own & linked:
                errors.append(
                    f"Requirement '{requirement.slug}' has no linked implementation plans"
                )

        for plan in plans:
            if plan.priority == Priority.CRITICAL:
                if not plan.depends_on and len(plans) > 1:
                    warnings.append(
                        f"Critical plan '{plan.slug}' has no dependencies - verify "
                        "if this is correct"
                    )
                incomplete = sum(1 for task in plan.tasks if not task.completed)
                if not plan.completed and incomplete:
                    warnings.append(
                        f"Critical plan '{plan.slug}' has {incomplete} incomplete tasks"
                    )
            if not plan.acceptance_criteria.strip():
                errors.append(f"Plan '{plan.slug}' missing acceptance criteria")
            if not plan.test_cases:
                warnings.append(f"Plan '{plan.slug}' has no test cases defined")

        component_ids = {component.id for component in corpus.components}
        for component in corpus.components:
            if len(component.description.strip()) < self._min_description_length:
                warnings.append(
                    f"Component '{component.slug}' has insufficient description"
                )
            errors.extend(
                f"Component '{component.slug}' depends on non-existent "
                f"component '{dep}'"
                for dep in component.depends_on
                if dep not in component_ids
            )

        graph = build_dependency_graph(dependency_map(corpus.components))
        errors.extend(
            f"Circular dependency detected in components: {format_cycle(cycle)}"
            for cycle in graph.cycles
        )

        return ValidationReport.of(errors, warnings)

    async def run_full_validation(self) -> ValidationReport:
        """Run entity, reference and business-rule validation concurrently."""
        entity_report, reference_report, business_report = await gather(
            self.validate_all,
            self.validate_references,
            self.validate_business_rules,
        )
        report = entity_report.merge(reference_report, business_report)
        self._logger.info(
            "validation_completed",
            valid=report.valid,
            errors=len(report.errors),
            warnings=len(report.warnings),
        )
        return report
