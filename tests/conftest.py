# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from deepwork.cli.bootstrap import create_initial_state
from deepwork.core.state import AppState
from deepwork.focus.session_manager import FocusSessionManager
from deepwork.storage.store import RecordStore
from deepwork.tasks.task_repo import TaskRepository

from .fakes import FakeClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="deepwork-test",
        data_dir=tmp_path,
        db_path=tmp_path / "deepwork.sqlite3",
        session_path=tmp_path / "focus_session.json",
        backup_dir=tmp_path / "backups",
        recommend_category="work",
        default_window_minutes=40,
        default_custom_minutes=50,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock) -> AppState:
    """
    AppState wired exactly like the CLI, with a fake clock.

    NOTE: the real SQLite store and snapshot file are used because their
    behaviour across "restarts" is part of what we want to test.
    """
    return create_initial_state(settings=settings, clock=clock)


@pytest.fixture()
def store(state: AppState) -> RecordStore:
    return state.store


@pytest.fixture()
def repo(state: AppState) -> TaskRepository:
    return state.repo


@pytest.fixture()
def focus(state: AppState) -> FocusSessionManager:
    return state.focus
