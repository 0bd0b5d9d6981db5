# src/deepwork/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..focus.session_manager import FocusSessionManager
from ..storage.store import RecordStore
from ..tasks.task_repo import TaskRepository
from ..timeutil import Clock, utc_now
from ..user_settings import UserSettings


@dataclass
class AppState:
    """Everything a connector needs; built once by cli.bootstrap."""

    settings: Any
    store: RecordStore
    repo: TaskRepository
    focus: FocusSessionManager
    prefs: UserSettings
    clock: Clock = utc_now
