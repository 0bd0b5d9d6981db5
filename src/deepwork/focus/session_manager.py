# src/deepwork/focus/session_manager.py

from __future__ import annotations

"""
Focus session manager.

Owns the single open focus session ("at most one task is focusing") and the
durable snapshot that lets it survive restarts:

- start:   check no other task is focusing, persist the snapshot, then flip the
           task to focusing, all under the store's write lock
- finish:  credit elapsed minutes (>= 1, rounded up), append a Session and
           update the task in one transaction, then drop the snapshot
- abandon: put the task back in its origin state; no Session, no time

After a crash the snapshot file explains any task stuck in focusing. If it is
missing, rehydrate() rebuilds one with started_at = now: time before the crash
is not credited.
"""

import logging
import math
import uuid
from datetime import datetime

from ..core.ports import RecordRepo, SnapshotStore
from ..errors import Conflict, InvalidArgument, InvalidState, NotFound
from ..tasks.task_models import FocusSessionSnapshot, Session, Task, TaskState
from ..tasks.task_repo import SESSIONS, TaskRepository, validate_minutes
from ..timeutil import Clock, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

MIN_CREDIT_MS = 60_000


def credited_minutes(started_at: datetime, now: datetime) -> int:
    """ceil(max(elapsed, 1 min) / 1 min)."""
    elapsed_ms = int((now - started_at).total_seconds() * 1000)
    return math.ceil(max(elapsed_ms, MIN_CREDIT_MS) / MIN_CREDIT_MS)


class FocusSessionManager:
    def __init__(
        self,
        store: RecordRepo,
        repo: TaskRepository,
        snapshots: SnapshotStore,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._repo = repo
        self._snapshots = snapshots
        self._clock = clock
        self._snapshot: FocusSessionSnapshot | None = None

    # ---- state ----

    def current(self) -> FocusSessionSnapshot | None:
        return self._snapshot

    def focusing_task(self) -> Task | None:
        if self._snapshot is None:
            return None
        try:
            return self._repo.get_task(self._snapshot.task_id)
        except NotFound:
            logger.warning("Open session points at missing task %s; clearing.", self._snapshot.task_id)
            self._set_snapshot(None)
            return None

    def elapsed_minutes(self, now: datetime | None = None) -> int:
        """Minutes that finish() would credit right now (0 when idle)."""
        if self._snapshot is None:
            return 0
        return credited_minutes(parse_iso(self._snapshot.started_at), now or self._clock())

    def _set_snapshot(self, snapshot: FocusSessionSnapshot | None) -> None:
        self._snapshots.save(snapshot)
        self._snapshot = snapshot

    # ---- startup ----

    def rehydrate(self) -> FocusSessionSnapshot | None:
        """
        Rebuild the in-memory session from durable state. Call once at startup
        (and after a backup import).
        """
        snap = self._snapshots.load()
        focusing = self._repo.get_focusing_task()

        if snap is not None and (focusing is None or focusing.id != snap.task_id):
            logger.info(
                "Discarding stale focus snapshot task_id=%s (focusing=%s)",
                snap.task_id,
                focusing.id if focusing else None,
            )
            snap = None
            self._snapshots.save(None)

        if snap is None and focusing is not None:
            snap = FocusSessionSnapshot(
                task_id=focusing.id,
                started_at=to_iso(self._clock()),
                origin_state=focusing.origin_state_guess(),
            )
            self._snapshots.save(snap)
            logger.warning(
                "Recovered open session for task_id=%s without a snapshot; elapsed time before restart is lost.",
                focusing.id,
            )

        self._snapshot = snap
        if snap is not None:
            logger.info("Focus session active task_id=%s since=%s", snap.task_id, snap.started_at)
        return snap

    # ---- operations ----

    def start(self, task_id: str) -> Task:
        """
        Open a session on task_id.

        Raises Conflict if another task is focusing, InvalidState for archived tasks.
        Starting the task that is already focusing resumes its session.
        """
        previous = self._snapshot
        written = False
        try:
            with self._store.transaction() as tx:
                others = [t for t in self._repo.focusing_in(tx) if t.id != task_id]
                if others:
                    raise Conflict(
                        f"Task {others[0].id} is already focusing; finish or abandon it first",
                        task_id=others[0].id,
                    )

                task = self._repo.load_in(tx, task_id)
                if task.state == TaskState.DONE:
                    raise InvalidState(f"Task {task_id} is archived", task_id=task_id, state=task.state.value)

                resuming = task.state == TaskState.FOCUSING
                if resuming and previous is not None and previous.task_id == task_id:
                    snap = previous
                else:
                    origin = task.origin_state_guess() if resuming else task.state
                    snap = FocusSessionSnapshot(
                        task_id=task_id, started_at=to_iso(self._clock()), origin_state=origin
                    )

                # Snapshot first: a crash after this point leaves a focusing task
                # that the snapshot explains, or a stale snapshot rehydrate() drops.
                self._snapshots.save(snap)
                written = True
                if task.state != TaskState.FOCUSING:
                    task.state = TaskState.FOCUSING
                    self._repo.save_in(tx, task)
        except BaseException:
            if written:
                self._snapshots.save(previous)
            raise

        self._snapshot = snap
        logger.info("Focus started task_id=%s origin=%s", task_id, snap.origin_state)
        return task

    def finish(self, note: str | None = None, *, minutes: int | None = None) -> Task:
        """
        Close the open session and record it.

        minutes overrides the elapsed-time credit (validated to [1, 9999]).
        """
        snap = self._snapshot
        if snap is None:
            raise InvalidState("No focus session is open")

        now = self._clock()
        if minutes is None:
            credit = credited_minutes(parse_iso(snap.started_at), now)
        else:
            credit = validate_minutes(minutes, what="minutes")
        if note is not None and not isinstance(note, str):
            raise InvalidArgument("note must be a string")
        clean_note = (note or "").strip() or None
        now_iso = to_iso(now)

        with self._store.transaction() as tx:
            task = self._repo.load_in(tx, snap.task_id)
            if task.state != TaskState.FOCUSING:
                raise InvalidState(
                    f"Task {task.id} is not focusing (state={task.state})",
                    task_id=task.id,
                    state=task.state.value,
                )

            task.spent_minutes += credit
            task.session_count += 1
            task.last_session_end_at = now_iso
            if clean_note:
                task.last_finish_note = clean_note
            task.state = TaskState.WARM
            self._repo.save_in(tx, task)

            session = Session(
                id=str(uuid.uuid4()),
                task_id=task.id,
                start_at=snap.started_at,
                end_at=now_iso,
                minutes=credit,
                note_snapshot=clean_note,
                category=task.category,
            )
            tx.put(SESSIONS, session.to_record())

        self._set_snapshot(None)
        logger.info("Focus finished task_id=%s minutes=%s sessions=%s", task.id, credit, task.session_count)
        return task

    def abandon(self) -> Task | None:
        """Leave the session without recording anything."""
        snap = self._snapshot
        if snap is None:
            raise InvalidState("No focus session is open")

        task: Task | None = None
        with self._store.transaction() as tx:
            try:
                task = self._repo.load_in(tx, snap.task_id)
            except NotFound:
                logger.warning("Abandoning session of deleted task %s", snap.task_id)
            else:
                if task.state == TaskState.FOCUSING:
                    task.state = snap.origin_state
                    self._repo.save_in(tx, task)

        self._set_snapshot(None)
        logger.info("Focus abandoned task_id=%s reverted_to=%s", snap.task_id, snap.origin_state)
        return task

    def mark_done(self, task_id: str) -> Task:
        """Archive a task; archiving the focusing task also closes its session unrecorded."""
        snap = self._snapshot
        owner = snap.task_id if snap is not None else None
        task = self._repo.mark_done(task_id, session_owner=owner)
        if owner == task_id:
            self._set_snapshot(None)
        return task

    def delete_task(self, task_id: str) -> Task:
        task = self._repo.delete_task(task_id)
        self.forget_task(task_id)
        return task

    def forget_task(self, task_id: str) -> None:
        if self._snapshot is not None and self._snapshot.task_id == task_id:
            self._set_snapshot(None)
