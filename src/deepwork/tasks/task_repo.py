# src/deepwork/tasks/task_repo.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from ..core.ports import RecordRepo, RecordTransaction
from ..errors import InvalidArgument, InvalidState, NotFound
from ..storage.store import KeyRange
from ..timeutil import Clock, local_day_start, to_iso, utc_now
from .task_models import (
    MAX_MINUTES,
    MIN_MINUTES,
    UNTITLED_TASK,
    Session,
    Task,
    TaskCategory,
    TaskState,
)

logger = logging.getLogger(__name__)

TASKS = "tasks"
SESSIONS = "sessions"

_UNSET: Any = object()


def validate_minutes(value: Any, *, what: str) -> int:
    """Integers in [1, 9999]; bool is rejected even though it is an int."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{what} must be an integer, got {value!r}")
    if not MIN_MINUTES <= value <= MAX_MINUTES:
        raise InvalidArgument(f"{what} must be between {MIN_MINUTES} and {MAX_MINUTES}, got {value}")
    return value


def _clean_title(title: Any) -> str:
    if title is None:
        return UNTITLED_TASK
    if not isinstance(title, str):
        raise InvalidArgument("title must be a string")
    return title.strip() or UNTITLED_TASK


def _category(raw: Any) -> TaskCategory:
    try:
        return TaskCategory(raw)
    except ValueError:
        raise InvalidArgument(f"unknown category: {raw!r}") from None


def remaining_minutes(task: Task) -> int | None:
    """estimate - spent, floored at 0; None when there is no estimate."""
    if task.estimate_minutes is None or task.estimate_minutes <= 0:
        return None
    return max(task.estimate_minutes - task.spent_minutes, 0)


def progress_ratio(task: Task) -> float | None:
    if task.estimate_minutes is None or task.estimate_minutes <= 0:
        return None
    return task.spent_minutes / task.estimate_minutes


class TaskRepository:
    """
    CRUD and lifecycle transitions for tasks, plus read access to sessions.

    Lifecycle (see TaskState):
    - cold/warm  --start-->   focusing       (FocusSessionManager)
    - focusing   --finish-->  warm           (FocusSessionManager)
    - focusing   --abandon--> origin state   (FocusSessionManager)
    - cold/warm/focusing --mark_done--> done
    - done       --restore--> warm if session_count > 0 else cold

    Every mutation runs inside a single store transaction.
    """

    def __init__(self, store: RecordRepo, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> RecordRepo:
        return self._store

    def now_iso(self) -> str:
        return to_iso(self._clock())

    # ---- transaction-scoped helpers (shared with FocusSessionManager) ----

    @staticmethod
    def load_in(tx: RecordTransaction, task_id: str) -> Task:
        try:
            return Task.from_record(tx.get(TASKS, task_id))
        except NotFound:
            raise NotFound(f"Task {task_id} not found", collection=TASKS, record_id=task_id) from None

    def save_in(self, tx: RecordTransaction, task: Task) -> Task:
        task.updated_at = self.now_iso()
        tx.put(TASKS, task.to_record())
        return task

    @staticmethod
    def focusing_in(tx: RecordTransaction) -> list[Task]:
        return [Task.from_record(r) for r in tx.list_by_index(TASKS, "by_state", TaskState.FOCUSING.value)]

    # ---- create / read ----

    def create_task(
        self,
        title: str | None,
        *,
        estimate_minutes: int | None = None,
        category: TaskCategory | str = TaskCategory.WORK,
    ) -> Task:
        if estimate_minutes is not None:
            validate_minutes(estimate_minutes, what="estimate_minutes")
        now = self.now_iso()
        task = Task(
            id=str(uuid.uuid4()),
            title=_clean_title(title),
            estimate_minutes=estimate_minutes,
            spent_minutes=0,
            state=TaskState.COLD,
            category=_category(category),
            last_finish_note=None,
            last_session_end_at=None,
            session_count=0,
            created_at=now,
            updated_at=now,
        )
        self._store.put(TASKS, task.to_record())
        logger.info("Task created id=%s category=%s estimate=%s", task.id, task.category, estimate_minutes)
        return task

    def get_task(self, task_id: str) -> Task:
        with self._store.transaction(readonly=True) as tx:
            return self.load_in(tx, task_id)

    def list_tasks(self) -> list[Task]:
        tasks = [Task.from_record(r) for r in self._store.list_all(TASKS)]
        tasks.sort(key=lambda t: (t.created_at, t.id))
        return tasks

    def list_active(self) -> list[Task]:
        return [t for t in self.list_tasks() if t.state != TaskState.DONE]

    def list_done(self) -> list[Task]:
        done = [Task.from_record(r) for r in self._store.list_by_index(TASKS, "by_state", TaskState.DONE.value)]
        done.sort(key=lambda t: t.updated_at, reverse=True)
        return done

    def get_focusing_task(self) -> Task | None:
        with self._store.transaction(readonly=True) as tx:
            focusing = self.focusing_in(tx)
        if len(focusing) > 1:
            logger.error("Store holds %d focusing tasks: %s", len(focusing), [t.id for t in focusing])
        return focusing[0] if focusing else None

    # ---- edits ----

    def update_task(
        self,
        task_id: str,
        *,
        title: str | None = _UNSET,
        estimate_minutes: int | None = _UNSET,
        category: TaskCategory | str = _UNSET,
    ) -> Task:
        """
        Edit title/estimate/category. Allowed in any state; never changes state.

        Passing estimate_minutes=None clears the estimate.
        """
        if estimate_minutes is not _UNSET and estimate_minutes is not None:
            validate_minutes(estimate_minutes, what="estimate_minutes")

        with self._store.transaction() as tx:
            task = self.load_in(tx, task_id)
            if title is not _UNSET:
                task.title = _clean_title(title)
            if estimate_minutes is not _UNSET:
                task.estimate_minutes = estimate_minutes
            if category is not _UNSET:
                task.category = _category(category)
            self.save_in(tx, task)
        logger.debug("Task updated id=%s", task_id)
        return task

    def mark_done(self, task_id: str, *, session_owner: str | None = None) -> Task:
        """
        Archive a task. Idempotent for tasks already done.

        A focusing task may only be archived by the session that owns it
        (session_owner == task_id); the caller is responsible for closing that session.
        """
        with self._store.transaction() as tx:
            task = self.load_in(tx, task_id)
            if task.state == TaskState.DONE:
                return task
            if task.state == TaskState.FOCUSING and session_owner != task_id:
                raise InvalidState(
                    f"Task {task_id} is focusing in a session not owned by the caller",
                    task_id=task_id,
                    state=task.state.value,
                )
            prev = task.state
            task.state = TaskState.DONE
            self.save_in(tx, task)
        logger.info("Task archived id=%s from=%s", task_id, prev)
        return task

    def restore(self, task_id: str) -> Task:
        with self._store.transaction() as tx:
            task = self.load_in(tx, task_id)
            if task.state != TaskState.DONE:
                raise InvalidState(
                    f"Task {task_id} is not archived (state={task.state})",
                    task_id=task_id,
                    state=task.state.value,
                )
            task.state = task.origin_state_guess()
            self.save_in(tx, task)
        logger.info("Task restored id=%s to=%s", task_id, task.state)
        return task

    def delete_task(self, task_id: str) -> Task:
        """
        Remove a task. Its sessions are kept (detached) so historical totals stay intact.
        """
        with self._store.transaction() as tx:
            task = self.load_in(tx, task_id)
            tx.delete(TASKS, task_id)
        logger.info("Task deleted id=%s state=%s sessions_kept=%s", task_id, task.state, task.session_count)
        return task

    # ---- sessions ----

    def list_sessions_for_task(self, task_id: str) -> list[Session]:
        recs = self._store.list_by_index(SESSIONS, "by_task", task_id)
        return sorted((Session.from_record(r) for r in recs), key=lambda s: s.end_at)

    def list_sessions_between(self, start: datetime, end: datetime) -> list[Session]:
        recs = self._store.list_by_index(SESSIONS, "by_end_at", KeyRange(to_iso(start), to_iso(end)))
        return [Session.from_record(r) for r in recs]

    def list_sessions(self) -> list[Session]:
        return [Session.from_record(r) for r in self._store.list_all(SESSIONS)]

    def today_minutes(self, now: datetime | None = None) -> int:
        """Minutes of sessions that ended since local midnight."""
        now = now or self._clock()
        return sum(s.minutes for s in self.list_sessions_between(local_day_start(now), now))

    def total_minutes(self, category: TaskCategory | str | None = None) -> int:
        sessions = self.list_sessions()
        if category is not None:
            cat = _category(category)
            sessions = [s for s in sessions if s.category == cat]
        return sum(s.minutes for s in sessions)
