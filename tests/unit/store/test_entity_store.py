"""Unit tests for the entity store."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog
from structlog.testing import LogCapture
from structlog.typing import FilteringBoundLogger

from specforge.enums import EntityType, HistoryEvent, SortOrder
from specforge.exceptions import EntityIOError, EntityParseError, UnknownEntityTypeError
from specforge.store import (
    EntityStore,
    FileEntityStorage,
    HistoryLog,
    ListOptions,
    Plan,
    Requirement,
    ValidationEngine,
)
from specforge.store._io import write_yaml_atomic

Factory = Callable[..., dict[str, Any]]

pytestmark = pytest.mark.anyio


class TestCreate:
    async def test_assigns_number_slug_and_id(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        result = await store.create(EntityType.REQUIREMENT, requirement_data())

        assert result.success
        assert result.data is not None
        assert result.data.id == "req-001-auth"
        assert result.data.created_at == result.data.updated_at

    async def test_qualifies_criteria_with_assigned_id(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        data = requirement_data(
            criteria=[
                {"id": "crit-007", "description": "Login works"},
                {"id": "req-999-old/crit-001", "description": "Logout works"},
            ]
        )

        result = await store.create(EntityType.REQUIREMENT, data)

        assert isinstance(result.data, Requirement)
        assert [c.id for c in result.data.criteria] == [
            "req-001-auth/crit-001",
            "req-001-auth/crit-002",
        ]

    async def test_numbers_increase_and_gaps_are_not_reused(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        first = await store.create(EntityType.PLAN, plan_data(name="One"))
        second = await store.create(EntityType.PLAN, plan_data(name="Two"))
        assert first.data is not None
        assert second.data is not None
        assert await store.delete(EntityType.PLAN, second.data.id)

        third = await store.create(EntityType.PLAN, plan_data(name="Three"))

        assert first.data.id == "pln-001-one"
        assert third.data is not None
        assert third.data.id == "pln-002-three"

    async def test_explicit_slug_and_number(
        self, store: EntityStore, component_data: Factory
    ) -> None:
        result = await store.create(
            EntityType.SERVICE, component_data(number=12, slug="billing-api")
        )

        assert result.data is not None
        assert result.data.id == "svc-012-billing-api"

    async def test_default_slug_when_name_has_no_usable_characters(
        self, store: EntityStore, component_data: Factory
    ) -> None:
        result = await store.create(EntityType.LIBRARY, component_data(name="!!!"))

        assert result.data is not None
        assert result.data.id == "lib-001-untitled"

    async def test_rejects_existing_id(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        _ = await store.create(EntityType.REQUIREMENT, requirement_data())

        result = await store.create(EntityType.REQUIREMENT, requirement_data(number=1))

        assert not result.success
        assert result.error == "Requirement with ID 'req-001-auth' already exists"

    async def test_components_share_the_component_label(
        self, store: EntityStore, component_data: Factory
    ) -> None:
        _ = await store.create(EntityType.APP, component_data(slug="web"))

        result = await store.create(EntityType.APP, component_data(number=1, slug="web"))

        assert result.error == "Component with ID 'app-001-web' already exists"

    async def test_rejects_invalid_slug(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        result = await store.create(EntityType.PLAN, plan_data(slug="Not A Slug"))

        assert not result.success
        assert result.error is not None
        assert result.error.startswith("Invalid slug for plan")

    @pytest.mark.parametrize("number", [-1, "7", True])
    async def test_rejects_invalid_number(
        self, store: EntityStore, plan_data: Factory, number: object
    ) -> None:
        result = await store.create(EntityType.PLAN, plan_data(number=number))

        assert not result.success
        assert result.error is not None
        assert result.error.startswith("Invalid number for plan")

    async def test_reports_field_errors(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        result = await store.create(
            EntityType.REQUIREMENT, requirement_data(criteria=[], priority="urgent")
        )

        assert not result.success
        assert {error.split(":")[0] for error in result.errors} == {
            "criteria",
            "priority",
        }
        assert await store.count(EntityType.REQUIREMENT) == 0

    async def test_non_list_criteria_fail_validation(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        result = await store.create(
            EntityType.REQUIREMENT, requirement_data(criteria="none")
        )

        assert not result.success

    async def test_unknown_fields_are_dropped(
        self, store: EntityStore, storage: FileEntityStorage, component_data: Factory
    ) -> None:
        result = await store.create(EntityType.APP, component_data(legacy=True))
        assert result.data is not None

        document = await storage.read_entity(EntityType.APP, result.data.id)

        assert document is not None
        assert "legacy" not in document
        assert "id" not in document

    async def test_unknown_type_raises(self, store: EntityStore) -> None:
        with pytest.raises(UnknownEntityTypeError):
            _ = await store.create("epic", {"name": "x"})

    async def test_records_history(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        _ = await store.create(EntityType.REQUIREMENT, requirement_data())

        assert store.history is not None
        (entry,) = store.history.get(entity_id="req-001-auth")
        assert entry.event == HistoryEvent.CREATED
        assert entry.actor == "tester"


class TestGet:
    async def test_returns_created_entity(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        result = await store.get(EntityType.PLAN, created.data.id)

        assert result.data == created.data

    async def test_not_found(self, store: EntityStore) -> None:
        result = await store.get(EntityType.REQUIREMENT, "req-009-missing")

        assert not result.success
        assert result.error == "Requirement with ID 'req-009-missing' not found"

    async def test_malformed_id(self, store: EntityStore) -> None:
        result = await store.get(EntityType.REQUIREMENT, "pln-001-login")

        assert not result.success
        assert result.error is not None
        assert "req-NNN-slug" in result.error

    async def test_corrupt_document_raises(
        self, store: EntityStore, storage: FileEntityStorage
    ) -> None:
        await storage.write_entity(EntityType.PLAN, "pln-001-broken", {"name": "x"})

        with pytest.raises(EntityParseError) as exc_info:
            _ = await store.get(EntityType.PLAN, "pln-001-broken")

        assert exc_info.value.content_type == "entity"


class TestUpdate:
    async def test_merges_patch_and_preserves_identity(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        result = await store.update(
            EntityType.PLAN,
            created.data.id,
            {"name": "Renamed", "slug": "other", "number": 9, "created_at": None},
        )

        assert result.data is not None
        assert result.data.id == created.data.id
        assert result.data.name == "Renamed"
        assert result.data.description == created.data.description
        assert result.data.created_at == created.data.created_at
        assert result.data.updated_at >= created.data.updated_at

    async def test_records_changed_fields(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        _ = await store.update(
            EntityType.PLAN, created.data.id, {"priority": "high", "name": "X"}
        )

        assert store.history is not None
        (entry,) = store.history.get(
            entity_id=created.data.id, event=HistoryEvent.UPDATED
        )
        assert entry.changes == ("name", "priority")

    async def test_not_found(self, store: EntityStore) -> None:
        result = await store.update(EntityType.PLAN, "pln-001-x", {"name": "y"})

        assert result.error == "Entity with ID 'pln-001-x' not found"

    async def test_invalid_patch_leaves_entity_untouched(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        result = await store.update(EntityType.PLAN, created.data.id, {"name": ""})
        current = await store.get(EntityType.PLAN, created.data.id)

        assert not result.success
        assert current.data == created.data

    async def test_expected_updated_at_guards_against_stale_writes(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None
        stamp = created.data.updated_at

        first = await store.update(
            EntityType.PLAN, created.data.id, {"name": "A"}, expected_updated_at=stamp
        )
        second = await store.update(
            EntityType.PLAN, created.data.id, {"name": "B"}, expected_updated_at=stamp
        )

        assert first.success
        assert not second.success
        assert second.error is not None
        assert "was modified at" in second.error


class TestDelete:
    async def test_delete(self, store: EntityStore, plan_data: Factory) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        assert await store.delete(EntityType.PLAN, created.data.id) is True
        assert await store.delete(EntityType.PLAN, created.data.id) is False
        assert not await store.exists(EntityType.PLAN, created.data.id)

    async def test_malformed_id_is_not_deleted(self, store: EntityStore) -> None:
        assert await store.delete(EntityType.PLAN, "nonsense") is False


class TestListEntities:
    @pytest.fixture
    async def plans(self, store: EntityStore, plan_data: Factory) -> list[Plan]:
        specs = [
            {"name": "Gamma", "priority": "low", "tags": ["backend"]},
            {"name": "Alpha", "priority": "high", "tags": ["frontend"]},
            {"name": "Beta", "priority": "critical", "completed": True},
        ]
        created: list[Plan] = []
        for spec in specs:
            result = await store.create(EntityType.PLAN, plan_data(**spec))
            assert isinstance(result.data, Plan)
            created.append(result.data)
        return created

    async def test_lists_everything_in_id_order(
        self, store: EntityStore, plans: list[Plan]
    ) -> None:
        result = await store.list_entities(EntityType.PLAN)

        assert result.data is not None
        assert [p.id for p in result.data] == [p.id for p in plans]

    async def test_filters_are_or_within_and_across(
        self, store: EntityStore, plans: list[Plan]
    ) -> None:
        options = ListOptions(priority=("high", "critical"), completed=False)

        result = await store.list_entities(EntityType.PLAN, options)

        assert result.data is not None
        assert [p.name for p in result.data] == ["Alpha"]

    async def test_tag_filter(self, store: EntityStore, plans: list[Plan]) -> None:
        result = await store.list_entities(
            EntityType.PLAN, ListOptions(tags=("backend", "ops"))
        )

        assert result.data is not None
        assert [p.name for p in result.data] == ["Gamma"]

    async def test_sorts_then_pages(self, store: EntityStore, plans: list[Plan]) -> None:
        options = ListOptions(
            sort_by="name", sort_order=SortOrder.DESC, offset=1, limit=1
        )

        result = await store.list_entities(EntityType.PLAN, options)

        assert result.data is not None
        assert [p.name for p in result.data] == ["Beta"]

    async def test_sorts_numbers_numerically(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        for number in (2, 10, 1):
            _ = await store.create(EntityType.PLAN, plan_data(number=number))

        result = await store.list_entities(
            EntityType.PLAN, ListOptions(sort_by="number")
        )

        assert result.data is not None
        assert [p.number for p in result.data] == [1, 2, 10]

    async def test_missing_sort_values_go_last(
        self, store: EntityStore, plans: list[Plan], requirement_data: Factory
    ) -> None:
        _ = await store.create(EntityType.REQUIREMENT, requirement_data())
        _ = await store.update(
            EntityType.PLAN, plans[2].id, {"criteria_id": "req-001-auth/crit-001"}
        )

        for order in SortOrder:
            result = await store.list_entities(
                EntityType.PLAN, ListOptions(sort_by="criteria_id", sort_order=order)
            )
            assert result.data is not None
            assert result.data[0].name == "Beta"

    async def test_empty_type(self, store: EntityStore) -> None:
        result = await store.list_entities(EntityType.DECISION)

        assert result.success
        assert result.data == []

    async def test_negative_paging_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="offset must be >= 0"):
            _ = ListOptions(offset=-1)
        with pytest.raises(ValueError, match="limit must be >= 0"):
            _ = ListOptions(limit=-2)

    async def test_yaml_documents_are_listed_and_readable(
        self,
        store: EntityStore,
        storage: FileEntityStorage,
        plans: list[Plan],
        plan_data: Factory,
    ) -> None:
        path = storage.entity_path(EntityType.PLAN, plans[0].id)
        _ = path.rename(path.with_suffix(".yaml"))

        listed = await store.list_entities(EntityType.PLAN)
        fetched = await store.get(EntityType.PLAN, plans[0].id)
        duplicate = await store.create(
            EntityType.PLAN, plan_data(name="Gamma", number=plans[0].number)
        )

        assert await store.count(EntityType.PLAN) == 3
        assert listed.data is not None
        assert [p.id for p in listed.data] == [p.id for p in plans]
        assert fetched.data == plans[0]
        assert duplicate.error == f"Plan with ID '{plans[0].id}' already exists"


class TestBatchCreate:
    async def test_allocates_sequential_numbers(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        _ = await store.create(EntityType.PLAN, plan_data(name="Existing"))

        result = await store.batch_create(
            EntityType.PLAN, [plan_data(name="One"), plan_data(name="Two")]
        )

        assert result.data is not None
        assert [p.id for p in result.data] == ["pln-002-one", "pln-003-two"]
        assert await store.count(EntityType.PLAN) == 3

    async def test_skips_past_explicit_numbers(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        result = await store.batch_create(
            EntityType.PLAN, [plan_data(name="A", number=5), plan_data(name="B")]
        )

        assert result.data is not None
        assert [p.id for p in result.data] == ["pln-005-a", "pln-006-b"]

    async def test_invalid_item_writes_nothing(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        result = await store.batch_create(
            EntityType.PLAN, [plan_data(name="Good"), plan_data(name="")]
        )

        assert not result.success
        assert result.error is not None
        assert result.error.startswith("Item 1: ")
        assert await store.count(EntityType.PLAN) == 0

    async def test_duplicate_ids_in_batch(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        result = await store.batch_create(
            EntityType.PLAN,
            [plan_data(name="Same", number=1), plan_data(name="Same", number=1)],
        )

        assert result.error == "Item 1: duplicate ID 'pln-001-same' in batch"
        assert await store.count(EntityType.PLAN) == 0

    async def test_empty_batch(self, store: EntityStore) -> None:
        result = await store.batch_create(EntityType.PLAN, [])

        assert result.success
        assert result.data == []

    async def test_records_batch_history(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        _ = await store.batch_create(EntityType.PLAN, [plan_data(name="One")])

        assert store.history is not None
        assert [e.event for e in store.history.get()] == [HistoryEvent.BATCH_CREATED]

    async def test_storage_failure_is_a_failed_result(
        self,
        store: EntityStore,
        plan_data: Factory,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        writes: list[Path] = []

        def _fail_second_write(path: Path, document: dict[str, Any]) -> None:
            writes.append(path)
            if len(writes) == 2:
                msg = "disk full"
                raise EntityIOError(msg, path=path, operation="write")
            write_yaml_atomic(path, document)

        monkeypatch.setattr(
            "specforge.store._storage.write_yaml_atomic", _fail_second_write
        )

        result = await store.batch_create(
            EntityType.PLAN, [plan_data(name="One"), plan_data(name="Two")]
        )

        assert not result.success
        assert result.error == "Batch write failed and was rolled back: disk full"
        assert len(writes) == 2
        assert await store.count(EntityType.PLAN) == 0
        assert store.history is not None
        assert store.history.get() == []


class TestBatchUpdate:
    async def test_updates_all(self, store: EntityStore, plan_data: Factory) -> None:
        created = await store.batch_create(
            EntityType.PLAN, [plan_data(name="One"), plan_data(name="Two")]
        )
        assert created.data is not None

        result = await store.batch_update(
            EntityType.PLAN,
            [(plan.id, {"approved": True}) for plan in created.data],
        )

        assert result.data is not None
        assert all(isinstance(p, Plan) and p.approved for p in result.data)

    async def test_missing_entity_fails_whole_batch(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        result = await store.batch_update(
            EntityType.PLAN,
            [(created.data.id, {"name": "Changed"}), ("pln-009-x", {"name": "y"})],
        )
        current = await store.get(EntityType.PLAN, created.data.id)

        assert result.error == "pln-009-x: Entity with ID 'pln-009-x' not found"
        assert current.data is not None
        assert current.data.name == created.data.name

    async def test_repeated_id_fails_whole_batch(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert isinstance(created.data, Plan)
        plan_id = created.data.id

        result = await store.batch_update(
            EntityType.PLAN, [(plan_id, {"tags": ["a"]}), (plan_id, {"approved": True})]
        )
        current = await store.get(EntityType.PLAN, plan_id)

        assert result.error == f"{plan_id}: duplicate ID in batch"
        assert current.data == created.data


class TestSupersedeItem:
    async def test_supersedes_task_and_moves_dependencies(
        self, store: EntityStore, plan_data: Factory, task_data: Factory
    ) -> None:
        created = await store.create(
            EntityType.PLAN,
            plan_data(
                tasks=[
                    task_data("task-001"),
                    task_data("task-002", "task-001"),
                    task_data("task-003", "task-002"),
                ]
            ),
        )
        assert created.data is not None

        result = await store.supersede_item(
            EntityType.PLAN,
            created.data.id,
            "tasks",
            "task-002",
            {"description": "Split into smaller steps"},
        )

        assert result.data is not None
        assert result.data.new_item.id == "task-004"
        stored = await store.get(EntityType.PLAN, created.data.id)
        assert isinstance(stored.data, Plan)
        tasks = {task.id: task for task in stored.data.tasks}
        assert tasks["task-002"].superseded_by == "task-004"
        assert tasks["task-003"].depends_on == ["task-004"]
        assert tasks["task-004"].depends_on == ["task-001"]

    async def test_supersedes_requirement_criterion(
        self, store: EntityStore, requirement_data: Factory
    ) -> None:
        _ = await store.create(EntityType.REQUIREMENT, requirement_data())

        result = await store.supersede_item(
            EntityType.REQUIREMENT,
            "req-001-auth",
            "criteria",
            "req-001-auth/crit-001",
            {"description": "Login with SSO"},
        )

        assert result.data is not None
        assert result.data.new_item.id == "req-001-auth/crit-002"
        assert store.history is not None
        latest = store.history.get(event=HistoryEvent.ITEM_SUPERSEDED)
        assert latest[0].summary == "req-001-auth/crit-001 superseded by req-001-auth/crit-002"

    async def test_unknown_collection(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        result = await store.supersede_item(
            EntityType.PLAN, created.data.id, "widgets", "widget-001", {}
        )

        assert result.error == "plan has no sub-item collection 'widgets'"

    async def test_unknown_item_and_entity(
        self, store: EntityStore, plan_data: Factory
    ) -> None:
        created = await store.create(EntityType.PLAN, plan_data())
        assert created.data is not None

        missing_item = await store.supersede_item(
            EntityType.PLAN, created.data.id, "tasks", "task-042", {}
        )
        missing_entity = await store.supersede_item(
            EntityType.PLAN, "pln-404-none", "tasks", "task-001", {}
        )

        assert missing_item.error is not None
        assert "task-042" in missing_item.error
        assert missing_entity.error == "Plan with ID 'pln-404-none' not found"

    async def test_already_superseded(
        self, store: EntityStore, plan_data: Factory, task_data: Factory
    ) -> None:
        created = await store.create(
            EntityType.PLAN, plan_data(tasks=[task_data("task-001")])
        )
        assert created.data is not None
        _ = await store.supersede_item(
            EntityType.PLAN, created.data.id, "tasks", "task-001", {}
        )

        again = await store.supersede_item(
            EntityType.PLAN, created.data.id, "tasks", "task-001", {}
        )

        assert again.error == "task-001 has already been superseded by task-002"


class TestCorpus:
    async def test_get_all_entities_groups_by_category(
        self,
        store: EntityStore,
        requirement_data: Factory,
        plan_data: Factory,
        component_data: Factory,
    ) -> None:
        _ = await store.create(EntityType.REQUIREMENT, requirement_data())
        _ = await store.create(EntityType.PLAN, plan_data())
        _ = await store.create(EntityType.APP, component_data(slug="web"))
        _ = await store.create(EntityType.SERVICE, component_data(slug="api"))

        corpus = await store.get_all_entities()

        assert [r.id for r in corpus.requirements] == ["req-001-auth"]
        assert [p.id for p in corpus.plans] == ["pln-001-login-flow"]
        assert [c.id for c in corpus.components] == ["app-001-web", "svc-001-api"]
        assert corpus.constitutions == ()
        assert len(corpus.all_entities()) == 4

    async def test_deleting_a_requirement_leaves_a_dangling_plan_link(
        self,
        store: EntityStore,
        requirement_data: Factory,
        plan_data: Factory,
        quiet_logger: FilteringBoundLogger,
    ) -> None:
        requirement = await store.create(EntityType.REQUIREMENT, requirement_data())
        assert isinstance(requirement.data, Requirement)
        criterion_id = requirement.data.criteria[0].id
        assert criterion_id == "req-001-auth/crit-001"
        _ = await store.create(EntityType.PLAN, plan_data(criteria_id=criterion_id))
        engine = ValidationEngine(store, logger=quiet_logger)

        before = await engine.validate_references()
        assert await store.delete(EntityType.REQUIREMENT, "req-001-auth")
        after = await engine.validate_references()

        assert before.valid
        assert after.errors == (
            "Plan 'login-flow' references non-existent criteria "
            "'req-001-auth/crit-001'",
        )


class TestHistoryFailures:
    async def test_failed_append_does_not_fail_the_write(
        self, storage: FileEntityStorage, tmp_path: Path, plan_data: Factory
    ) -> None:
        capture = LogCapture()
        logger: FilteringBoundLogger = structlog.wrap_logger(
            structlog.ReturnLogger(),
            processors=[capture],
            wrapper_class=structlog.make_filtering_bound_logger(0),
        )
        # A directory cannot be appended to.
        store = EntityStore(storage, history=HistoryLog(tmp_path), logger=logger)

        result = await store.create(EntityType.PLAN, plan_data())

        assert result.success
        assert await store.exists(EntityType.PLAN, "pln-001-login-flow")
        (warning,) = [e for e in capture.entries if e["log_level"] == "warning"]
        assert warning["event"] == "history_write_failed"
        assert warning["entity_id"] == "pln-001-login-flow"
