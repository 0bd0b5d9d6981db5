# src/deepwork/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, repository, focus manager and preferences into AppState,
- rehydrates the open focus session from durable state.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..focus.session_manager import FocusSessionManager
from ..focus.snapshot_file import SnapshotFile
from ..storage.store import RecordStore
from ..tasks.task_repo import TaskRepository
from ..timeutil import Clock, utc_now
from ..user_settings import UserSettings

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.session_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, clock: Clock = utc_now) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = RecordStore(settings.db_path)
    repo = TaskRepository(store, clock=clock)
    focus = FocusSessionManager(store, repo, SnapshotFile(settings.session_path), clock=clock)
    prefs = UserSettings(
        store,
        default_time_preference=getattr(settings, "default_window_minutes", 40),
        default_custom_minutes=getattr(settings, "default_custom_minutes", 50),
        clock=clock,
    )

    state = AppState(settings=settings, store=store, repo=repo, focus=focus, prefs=prefs, clock=clock)
    focus.rehydrate()
    return state
