"""Unit tests for entity and sub-item identifiers."""

import pytest

from specforge.enums import EntityType, SubItemKind
from specforge.exceptions import InvalidIdFormatError, UnknownEntityTypeError
from specforge.store._ids import (
    ParsedChildId,
    ParsedId,
    entity_prefix,
    entity_type_from_id,
    format_child_id,
    generate_child_id,
    generate_id,
    is_valid_id,
    next_child_number,
    next_number,
    parse_child_id,
    parse_id,
    qualified_child_id,
    require_valid_id,
)


class TestEntityPrefix:
    @pytest.mark.parametrize(
        ("entity_type", "prefix"),
        [
            (EntityType.REQUIREMENT, "req"),
            (EntityType.PLAN, "pln"),
            (EntityType.APP, "app"),
            (EntityType.SERVICE, "svc"),
            (EntityType.LIBRARY, "lib"),
            (EntityType.CONSTITUTION, "con"),
            (EntityType.DECISION, "dec"),
        ],
    )
    def test_maps_every_type(self, entity_type: EntityType, prefix: str) -> None:
        assert entity_prefix(entity_type) == prefix

    def test_accepts_string_values(self) -> None:
        assert entity_prefix("service") == "svc"

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnknownEntityTypeError) as exc_info:
            _ = entity_prefix("milestone")

        assert exc_info.value.entity_type == "milestone"


class TestGenerateId:
    def test_zero_pads_number(self) -> None:
        assert generate_id(EntityType.REQUIREMENT, 1, "auth") == "req-001-auth"

    def test_keeps_wide_numbers(self) -> None:
        assert generate_id(EntityType.PLAN, 1234, "big") == "pln-1234-big"

    def test_rejects_negative_number(self) -> None:
        with pytest.raises(ValueError, match="Invalid number"):
            _ = generate_id(EntityType.PLAN, -1, "x")

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnknownEntityTypeError):
            _ = generate_id("epic", 1, "x")


class TestParseId:
    def test_parses_valid_id(self) -> None:
        assert parse_id("svc-012-billing-api") == ParsedId(
            entity_type=EntityType.SERVICE, number=12, slug="billing-api"
        )

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "req-1-auth",
            "req-001-",
            "req-001-Auth",
            "req-001-auth-",
            "xyz-001-auth",
            "req-001-auth/crit-001",
            "req_001_auth",
        ],
    )
    def test_returns_none_for_malformed(self, value: str) -> None:
        assert parse_id(value) is None

    def test_entity_type_from_id(self) -> None:
        assert entity_type_from_id("dec-003-use-postgres") == EntityType.DECISION
        assert entity_type_from_id("nope") is None


class TestValidity:
    def test_is_valid_id_checks_type(self) -> None:
        assert is_valid_id(EntityType.PLAN, "pln-001-login")
        assert not is_valid_id(EntityType.REQUIREMENT, "pln-001-login")

    def test_require_valid_id_returns_parsed(self) -> None:
        parsed = require_valid_id("requirement", "req-002-billing")

        assert parsed.number == 2
        assert parsed.slug == "billing"

    def test_require_valid_id_raises_for_wrong_type(self) -> None:
        with pytest.raises(InvalidIdFormatError) as exc_info:
            _ = require_valid_id(EntityType.REQUIREMENT, "pln-001-login")

        assert exc_info.value.entity_id == "pln-001-login"
        assert "req-NNN-slug" in str(exc_info.value)


class TestNextNumber:
    def test_starts_at_one(self) -> None:
        assert next_number([], EntityType.REQUIREMENT) == 1

    def test_is_one_past_the_maximum(self) -> None:
        ids = ["req-003-x", "req-001-y"]

        assert next_number(ids, EntityType.REQUIREMENT) == 4

    def test_ignores_other_types_and_malformed_ids(self) -> None:
        ids = ["pln-009-x", "req-002-y", "garbage", "req-1-short"]

        assert next_number(ids, EntityType.REQUIREMENT) == 3

    def test_does_not_reuse_gaps(self) -> None:
        assert next_number(["app-001-a", "app-005-b"], EntityType.APP) == 6


class TestChildIds:
    def test_generate_child_id(self) -> None:
        assert generate_child_id("pln-001-login", SubItemKind.TASK, 4) == "task-004"

    def test_generate_child_id_under_sub_item(self) -> None:
        assert generate_child_id("flow-001", SubItemKind.STEP, 2) == "step-002"

    def test_generate_child_id_rejects_bad_parent(self) -> None:
        with pytest.raises(InvalidIdFormatError):
            _ = generate_child_id("not an id", SubItemKind.TASK, 1)

    def test_generate_child_id_rejects_unknown_kind(self) -> None:
        with pytest.raises(UnknownEntityTypeError):
            _ = generate_child_id("pln-001-login", "widget", 1)

    def test_qualified_child_id(self) -> None:
        result = qualified_child_id("req-001-auth", SubItemKind.CRITERIA, 1)

        assert result == "req-001-auth/crit-001"

    def test_format_child_id(self) -> None:
        assert format_child_id("dm", 7) == "dm-007"
        assert format_child_id("crit", 2, "req-004-x") == "req-004-x/crit-002"

    def test_parse_bare_child_id(self) -> None:
        assert parse_child_id("tc-010") == ParsedChildId(prefix="tc", number=10)

    def test_parse_qualified_child_id(self) -> None:
        assert parse_child_id("req-001-auth/crit-003") == ParsedChildId(
            prefix="crit", number=3, parent_id="req-001-auth"
        )

    def test_parse_child_id_rejects_malformed(self) -> None:
        assert parse_child_id("task-1") is None
        assert parse_child_id("widget-001") is None

    def test_next_child_number(self) -> None:
        assert next_child_number([]) == 1
        assert next_child_number(["task-001", "task-003", "junk"]) == 4
        assert next_child_number(["req-001-a/crit-002"]) == 3
