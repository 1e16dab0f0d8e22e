"""Shared test fixtures for specforge tests."""

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import structlog
from structlog.typing import FilteringBoundLogger

from specforge.store import EntityStore, FileEntityStorage, HistoryLog


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def quiet_logger() -> FilteringBoundLogger:
    """A logger that drops every event."""
    return structlog.wrap_logger(
        structlog.ReturnLogger(),
        wrapper_class=structlog.make_filtering_bound_logger(50),
    )


@pytest.fixture
def specs_root(tmp_path: Path) -> Path:
    return tmp_path / ".specs"


@pytest.fixture
def storage(specs_root: Path, quiet_logger: FilteringBoundLogger) -> FileEntityStorage:
    return FileEntityStorage(specs_root, logger=quiet_logger)


@pytest.fixture
def history(specs_root: Path) -> HistoryLog:
    return HistoryLog(specs_root / "history.jsonl", actor="tester")


@pytest.fixture
def store(
    storage: FileEntityStorage,
    history: HistoryLog,
    quiet_logger: FilteringBoundLogger,
) -> EntityStore:
    return EntityStore(storage, history=history, logger=quiet_logger)


@pytest.fixture
def sample_datetime() -> datetime:
    return datetime(2024, 1, 15, 10, 30, 0, tzinfo=UTC)


Factory = Callable[..., dict[str, Any]]


@pytest.fixture
def requirement_data() -> Factory:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": "Auth",
            "description": "Users can sign in to the application",
            "priority": "critical",
            "criteria": [
                {"id": "crit-001", "description": "Login with email and password"}
            ],
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def plan_data() -> Factory:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": "Login flow",
            "description": "Implement the login screen and session handling",
            "acceptance_criteria": "Users can log in and stay logged in",
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def component_data() -> Factory:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": "Web app",
            "description": "Customer facing single page application",
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def task_data() -> Factory:
    def _make(task_id: str, *depends_on: str, **overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": task_id,
            "description": f"Work item {task_id}",
            "depends_on": list(depends_on),
        }
        data.update(overrides)
        return data

    return _make
