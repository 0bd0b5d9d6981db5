# src/deepwork/tasks/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

UNTITLED_TASK = "Untitled task"

MIN_MINUTES = 1
MAX_MINUTES = 9999


class TaskState(StrEnum):
    """
    Task lifecycle state.

    cold -> focusing -> warm -> focusing -> ... ; any non-archived state -> done.
    """

    COLD = "cold"
    FOCUSING = "focusing"
    WARM = "warm"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskState:
        if not raw:
            return cls.COLD
        try:
            return cls(raw)
        except ValueError:
            return cls.COLD


class TaskCategory(StrEnum):
    """Independent work streams; only one is recommended at a time."""

    WORK = "work"
    LEISURE = "leisure"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskCategory:
        # Records written before categories existed belong to the work stream.
        if not raw:
            return cls.WORK
        try:
            return cls(raw)
        except ValueError:
            return cls.WORK


@dataclass(slots=True)
class Task:
    id: str
    title: str
    estimate_minutes: int | None
    spent_minutes: int
    state: TaskState
    category: TaskCategory

    last_finish_note: str | None
    last_session_end_at: str | None
    session_count: int

    created_at: str
    updated_at: str

    def origin_state_guess(self) -> TaskState:
        """State a focusing task falls back to when nothing better is known."""
        return TaskState.WARM if self.session_count > 0 else TaskState.COLD

    def to_record(self) -> dict[str, Any]:
        rec = asdict(self)
        rec["state"] = self.state.value
        rec["category"] = self.category.value
        return rec

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Task:
        estimate = rec.get("estimate_minutes")
        return cls(
            id=str(rec["id"]),
            title=str(rec.get("title") or UNTITLED_TASK),
            estimate_minutes=int(estimate) if isinstance(estimate, int) and estimate > 0 else None,
            spent_minutes=max(0, int(rec.get("spent_minutes") or 0)),
            state=TaskState.from_db(rec.get("state")),
            category=TaskCategory.from_db(rec.get("category")),
            last_finish_note=rec.get("last_finish_note"),
            last_session_end_at=rec.get("last_session_end_at"),
            session_count=max(0, int(rec.get("session_count") or 0)),
            created_at=str(rec.get("created_at") or ""),
            updated_at=str(rec.get("updated_at") or ""),
        )


@dataclass(frozen=True, slots=True)
class Session:
    """
    One completed focus interval. Write-once.

    task_id is a plain reference: sessions are kept after their task is deleted
    so lifetime totals do not shrink. category is a snapshot of the task's
    category at finish time for the same reason.
    """

    id: str
    task_id: str
    start_at: str
    end_at: str
    minutes: int
    note_snapshot: str | None
    category: TaskCategory = TaskCategory.WORK

    def to_record(self) -> dict[str, Any]:
        rec = asdict(self)
        rec["category"] = self.category.value
        return rec

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Session:
        return cls(
            id=str(rec["id"]),
            task_id=str(rec.get("task_id") or ""),
            start_at=str(rec.get("start_at") or ""),
            end_at=str(rec.get("end_at") or ""),
            minutes=max(1, int(rec.get("minutes") or 1)),
            note_snapshot=rec.get("note_snapshot"),
            category=TaskCategory.from_db(rec.get("category")),
        )


@dataclass(frozen=True, slots=True)
class FocusSessionSnapshot:
    """The open session, cached durably so a restart never loses it."""

    task_id: str
    started_at: str
    origin_state: TaskState

    def to_dict(self) -> dict[str, str]:
        return {
            "task_id": self.task_id,
            "started_at": self.started_at,
            "origin_state": self.origin_state.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusSessionSnapshot | None:
        task_id = data.get("task_id")
        started_at = data.get("started_at")
        origin = data.get("origin_state")
        if not (isinstance(task_id, str) and task_id and isinstance(started_at, str) and started_at):
            return None
        if origin not in (TaskState.COLD.value, TaskState.WARM.value):
            return None
        return cls(task_id=task_id, started_at=started_at, origin_state=TaskState(origin))
