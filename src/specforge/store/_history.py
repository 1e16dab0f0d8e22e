# pyright: reportAny=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
# pyright: reportExplicitAny=false
"""Change history log for the entity store.

This module provides the HistoryLog class, an append-only JSONL record of
create, update, delete and supersession events kept next to the entity
documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from specforge.enums import HistoryEvent
from specforge.store._io import append_jsonl, read_jsonl

if TYPE_CHECKING:
    from pathlib import Path

__all__ = ["HistoryEntry", "HistoryLog"]


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """A recorded change.

    Attributes:
        timestamp: When the change happened (timezone-aware).
        event: What kind of change it was.
        entity_type: Type of the changed entity.
        entity_id: Identifier of the changed entity.
        actor: Who made the change.
        summary: Short human-readable description.
        changes: Names of the fields touched, when known.
    """

    timestamp: datetime
    event: HistoryEvent
    entity_type: str
    entity_id: str
    actor: str
    summary: str = ""
    changes: tuple[str, ...] = field(default_factory=tuple)


class HistoryLog:
    """Append-only JSONL history of entity changes.

    Attributes:
        path: Location of the history.jsonl file.
        actor: Default actor recorded on new entries.
    """

    __slots__: Final = ("_actor", "_path")

    _path: Path
    _actor: str

    def __init__(self, path: Path, *, actor: str = "user") -> None:
        """Initialize the history log.

        Args:
            path: Location of the history.jsonl file (created on first write).
            actor: Default actor recorded on new entries.
        """
        self._path = path
        self._actor = actor

    @property
    def path(self) -> Path:
        """Location of the history file."""
        return self._path

    def _parse_entry(self, raw: dict[str, Any]) -> HistoryEntry:
        """Convert a raw dictionary to a HistoryEntry.

        Raises:
            ValueError: If the timestamp is not timezone-aware.
        """
        timestamp = datetime.fromisoformat(raw["timestamp"])
        if timestamp.tzinfo is None:
            msg = f"Timestamp must include timezone information: {timestamp}"
            raise ValueError(msg)

        return HistoryEntry(
            timestamp=timestamp,
            event=HistoryEvent(raw["event"]),
            entity_type=raw["entity_type"],
            entity_id=raw["entity_id"],
            actor=raw.get("actor", self._actor),
            summary=raw.get("summary", ""),
            changes=tuple(raw.get("changes", ())),
        )

    def record(
        self,
        event: HistoryEvent,
        entity_type: str,
        entity_id: str,
        *,
        summary: str = "",
        changes: tuple[str, ...] = (),
        actor: str | None = None,
    ) -> HistoryEntry:
        """Append an event to the log.

        Args:
            event: The kind of change.
            entity_type: Type of the changed entity.
            entity_id: Identifier of the changed entity.
            summary: Short description of the change.
            changes: Names of the fields touched.
            actor: Who made the change (defaults to the log's actor).

        Returns:
            The recorded entry.

        Raises:
            EntityIOError: If the log cannot be written.
        """
        entry = HistoryEntry(
            timestamp=datetime.now(UTC),
            event=event,
            entity_type=str(entity_type),
            entity_id=entity_id,
            actor=actor if actor is not None else self._actor,
            summary=summary,
            changes=changes,
        )

        raw: dict[str, Any] = {
            "timestamp": entry.timestamp.isoformat(),
            "event": str(entry.event),
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "actor": entry.actor,
            "summary": entry.summary,
        }
        if entry.changes:
            raw["changes"] = list(entry.changes)

        append_jsonl(self._path, raw)
        return entry

    def get(
        self,
        *,
        entity_id: str | None = None,
        event: HistoryEvent | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[HistoryEntry]:
        """Query recorded entries.

        Args:
            entity_id: Only include entries for this entity.
            event: Only include entries of this kind.
            since: Only include entries at or after this timestamp.
            limit: Maximum number of entries to return. Must be >= 1.

        Returns:
            Matching entries, newest first.

        Raises:
            ValueError: If limit is less than 1.
        """
        if limit < 1:
            msg = f"limit must be >= 1, got {limit}"
            raise ValueError(msg)

        entries = [
            entry
            for entry in (self._parse_entry(raw) for raw in read_jsonl(self._path))
            if (entity_id is None or entry.entity_id == entity_id)
            and (event is None or entry.event == event)
            and (since is None or entry.timestamp >= since)
        ]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]
