"""Unit tests for the JSONL history log."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pyfakefs.fake_filesystem import FakeFilesystem

from specforge.enums import HistoryEvent
from specforge.store import HistoryLog
from specforge.store._io import read_jsonl


@pytest.fixture
def log(fs: FakeFilesystem) -> HistoryLog:
    return HistoryLog(Path("/specs/history.jsonl"), actor="alice")


class TestRecord:
    def test_appends_entry(self, log: HistoryLog) -> None:
        entry = log.record(
            HistoryEvent.CREATED, "requirement", "req-001-auth", summary="Created Auth"
        )

        raw = read_jsonl(log.path)
        assert len(raw) == 1
        assert raw[0]["event"] == "created"
        assert raw[0]["actor"] == "alice"
        assert raw[0]["summary"] == "Created Auth"
        assert "changes" not in raw[0]
        assert entry.timestamp.tzinfo is not None

    def test_records_changes_and_actor_override(self, log: HistoryLog) -> None:
        _ = log.record(
            HistoryEvent.UPDATED,
            "plan",
            "pln-001-login",
            changes=("name", "tasks"),
            actor="bob",
        )

        raw = read_jsonl(log.path)[0]
        assert raw["changes"] == ["name", "tasks"]
        assert raw["actor"] == "bob"


class TestGet:
    def test_newest_first(self, fs: FakeFilesystem, log: HistoryLog) -> None:
        _ = fs.create_file(
            log.path,
            contents=(
                '{"timestamp": "2024-01-15T10:30:00+00:00", "event": "created", '
                '"entity_type": "plan", "entity_id": "pln-001-a"}\n'
                '{"timestamp": "2024-01-15T11:00:00+00:00", "event": "updated", '
                '"entity_type": "plan", "entity_id": "pln-001-a"}\n'
            ),
        )

        entries = log.get()

        assert [e.event for e in entries] == [HistoryEvent.UPDATED, HistoryEvent.CREATED]

    def test_filters(self, log: HistoryLog) -> None:
        _ = log.record(HistoryEvent.CREATED, "plan", "pln-001-a")
        _ = log.record(HistoryEvent.CREATED, "plan", "pln-002-b")
        _ = log.record(HistoryEvent.DELETED, "plan", "pln-001-a")

        assert len(log.get(entity_id="pln-001-a")) == 2
        assert [e.entity_id for e in log.get(event=HistoryEvent.DELETED)] == [
            "pln-001-a"
        ]
        assert len(log.get(limit=1)) == 1

    def test_since(self, log: HistoryLog) -> None:
        _ = log.record(HistoryEvent.CREATED, "plan", "pln-001-a")

        future = datetime.now(UTC) + timedelta(hours=1)

        assert log.get(since=future) == []

    def test_empty_log(self, log: HistoryLog) -> None:
        assert log.get() == []

    def test_rejects_bad_limit(self, log: HistoryLog) -> None:
        with pytest.raises(ValueError, match="limit must be >= 1"):
            _ = log.get(limit=0)

    def test_rejects_naive_timestamps(self, fs: FakeFilesystem, log: HistoryLog) -> None:
        _ = fs.create_file(
            log.path,
            contents=(
                '{"timestamp": "2024-01-15T10:30:00", "event": "created", '
                '"entity_type": "plan", "entity_id": "pln-001-a"}\n'
            ),
        )

        with pytest.raises(ValueError, match="timezone"):
            _ = log.get()

    def test_missing_actor_defaults_to_log_actor(
        self, fs: FakeFilesystem, log: HistoryLog
    ) -> None:
        _ = fs.create_file(
            log.path,
            contents=(
                '{"timestamp": "2024-01-15T10:30:00+00:00", "event": "deleted", '
                '"entity_type": "plan", "entity_id": "pln-001-a"}\n'
            ),
        )

        (entry,) = log.get()

        assert entry.actor == "alice"
        assert entry.changes == ()
