# tests/test_focus_session.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from deepwork.cli.bootstrap import create_initial_state
from deepwork.errors import Conflict, InvalidArgument, InvalidState, StorageFailure
from deepwork.focus.session_manager import FocusSessionManager, credited_minutes
from deepwork.focus.snapshot_file import SnapshotFile
from deepwork.storage.store import RecordStore
from deepwork.tasks.task_models import Session, TaskState
from deepwork.tasks.task_repo import TaskRepository

from .fakes import FakeClock, MemorySnapshotStore


def _focusing_count(repo: TaskRepository) -> int:
    return sum(1 for t in repo.list_tasks() if t.state == TaskState.FOCUSING)


def test_start_persists_snapshot_and_flips_state(
    repo: TaskRepository, focus: FocusSessionManager, settings: SimpleNamespace, clock: FakeClock
) -> None:
    task = repo.create_task("Deep", estimate_minutes=50)
    started = focus.start(task.id)

    assert started.state == TaskState.FOCUSING
    snap = SnapshotFile(settings.session_path).load()
    assert snap is not None
    assert snap.task_id == task.id
    assert snap.origin_state == TaskState.COLD
    assert focus.current() == snap


def test_start_conflicts_with_other_focusing_task(repo: TaskRepository, focus: FocusSessionManager) -> None:
    x = repo.create_task("X")
    y = repo.create_task("Y")
    focus.start(y.id)

    with pytest.raises(Conflict) as exc:
        focus.start(x.id)

    assert exc.value.task_id == y.id
    assert repo.get_task(y.id).state == TaskState.FOCUSING
    assert repo.get_task(x.id) == x
    assert focus.current().task_id == y.id


def test_start_then_abandon_restores_cold(repo: TaskRepository, focus: FocusSessionManager, clock: FakeClock) -> None:
    z = repo.create_task("Z")
    focus.start(z.id)
    clock.advance(minutes=30)

    reverted = focus.abandon()

    assert reverted is not None
    assert reverted.state == TaskState.COLD
    assert reverted.spent_minutes == 0
    assert repo.list_sessions_for_task(z.id) == []
    assert focus.current() is None


def test_abandon_keeps_warm_tasks_warm(repo: TaskRepository, focus: FocusSessionManager) -> None:
    task = repo.create_task("Warm one")
    focus.start(task.id)
    focus.finish(minutes=10)
    focus.start(task.id)

    assert focus.abandon().state == TaskState.WARM


def test_finish_records_session(repo: TaskRepository, focus: FocusSessionManager) -> None:
    task = repo.create_task("Outline", estimate_minutes=60)
    focus.start(task.id)

    done = focus.finish("draft outline", minutes=25)

    assert done.state == TaskState.WARM
    assert done.spent_minutes == 25
    assert done.session_count == 1
    assert done.last_finish_note == "draft outline"
    assert done.last_session_end_at is not None

    sessions = repo.list_sessions_for_task(task.id)
    assert len(sessions) == 1
    assert sessions[0].minutes == 25
    assert sessions[0].note_snapshot == "draft outline"
    assert sessions[0].end_at == done.last_session_end_at
    assert focus.current() is None


def test_blank_note_keeps_previous_hint(
    repo: TaskRepository, focus: FocusSessionManager, clock: FakeClock
) -> None:
    task = repo.create_task("Hints")
    focus.start(task.id)
    focus.finish("next: tests", minutes=5)
    clock.advance(minutes=10)
    focus.start(task.id)
    done = focus.finish("   ", minutes=5)

    assert done.last_finish_note == "next: tests"
    assert repo.list_sessions_for_task(task.id)[-1].note_snapshot is None

    # the snapshot stays as written even if the task note changes later
    assert repo.list_sessions_for_task(task.id)[0].note_snapshot == "next: tests"


def test_short_session_credits_one_minute(
    repo: TaskRepository, focus: FocusSessionManager, clock: FakeClock
) -> None:
    task = repo.create_task("Quick")
    focus.start(task.id)
    clock.advance(seconds=10)

    assert focus.finish().spent_minutes == 1


def test_elapsed_minutes_round_up(repo: TaskRepository, focus: FocusSessionManager, clock: FakeClock) -> None:
    task = repo.create_task("Rounding")
    focus.start(task.id)
    clock.advance(minutes=25, seconds=1)

    assert focus.elapsed_minutes() == 26
    assert focus.finish().spent_minutes == 26


def test_credited_minutes_helper(clock: FakeClock) -> None:
    start = clock()
    assert credited_minutes(start, start) == 1
    assert credited_minutes(start, clock.advance(seconds=60)) == 1
    assert credited_minutes(start, clock.advance(seconds=1)) == 2


def test_finish_and_abandon_need_open_session(focus: FocusSessionManager) -> None:
    with pytest.raises(InvalidState):
        focus.finish()
    with pytest.raises(InvalidState):
        focus.abandon()


def test_finish_rejects_bad_minutes(repo: TaskRepository, focus: FocusSessionManager) -> None:
    task = repo.create_task("Bad minutes")
    focus.start(task.id)
    with pytest.raises(InvalidArgument):
        focus.finish(minutes=0)
    assert repo.get_task(task.id).state == TaskState.FOCUSING


def test_start_archived_task_fails(repo: TaskRepository, focus: FocusSessionManager) -> None:
    task = repo.create_task("Archived")
    repo.mark_done(task.id)
    with pytest.raises(InvalidState):
        focus.start(task.id)


def test_finish_is_atomic(
    repo: TaskRepository, focus: FocusSessionManager, monkeypatch: pytest.MonkeyPatch
) -> None:
    task = repo.create_task("Atomic")
    focus.start(task.id)

    # A session record without an id makes the append fail inside the transaction.
    monkeypatch.setattr(Session, "to_record", lambda self: {"task_id": self.task_id})
    with pytest.raises(InvalidArgument):
        focus.finish(minutes=30)

    after = repo.get_task(task.id)
    assert after.state == TaskState.FOCUSING
    assert after.spent_minutes == 0
    assert after.session_count == 0
    assert repo.list_sessions() == []
    assert focus.current() is not None


def test_snapshot_is_written_before_state_flip(store: RecordStore, repo: TaskRepository, clock: FakeClock) -> None:
    snapshots = MemorySnapshotStore(fail_on_save=True)
    manager = FocusSessionManager(store, repo, snapshots, clock=clock)
    task = repo.create_task("Never flipped")

    with pytest.raises(StorageFailure):
        manager.start(task.id)

    assert repo.get_task(task.id).state == TaskState.COLD
    assert manager.current() is None


def test_restart_resumes_from_snapshot(settings: SimpleNamespace, clock: FakeClock) -> None:
    first = create_initial_state(settings=settings, clock=clock)
    task = first.repo.create_task("Survives restarts")
    first.focus.start(task.id)
    started_at = first.focus.current().started_at

    clock.advance(minutes=20)
    second = create_initial_state(settings=settings, clock=clock)

    snap = second.focus.current()
    assert snap is not None
    assert snap.task_id == task.id
    assert snap.started_at == started_at
    assert second.focus.finish().spent_minutes == 20


def test_restart_without_snapshot_does_not_credit_lost_time(settings: SimpleNamespace, clock: FakeClock) -> None:
    first = create_initial_state(settings=settings, clock=clock)
    task = first.repo.create_task("Crashed")
    first.focus.start(task.id)
    first.focus.finish(minutes=5)
    first.focus.start(task.id)

    settings.session_path.unlink()
    clock.advance(hours=2)
    second = create_initial_state(settings=settings, clock=clock)

    snap = second.focus.current()
    assert snap is not None
    assert snap.origin_state == TaskState.WARM
    assert SnapshotFile(settings.session_path).load() == snap

    clock.advance(seconds=30)
    assert second.focus.finish().spent_minutes == 5 + 1


def test_rehydrate_drops_stale_snapshot(settings: SimpleNamespace, clock: FakeClock) -> None:
    first = create_initial_state(settings=settings, clock=clock)
    task = first.repo.create_task("Stale")
    first.focus.start(task.id)

    # Task state reverted behind the manager's back (e.g. a restored backup).
    rec = first.store.get("tasks", task.id)
    rec["state"] = "cold"
    first.store.put("tasks", rec)

    second = create_initial_state(settings=settings, clock=clock)
    assert second.focus.current() is None
    assert not settings.session_path.exists()


def test_resume_keeps_origin_and_start(repo: TaskRepository, focus: FocusSessionManager, clock: FakeClock) -> None:
    task = repo.create_task("Resume")
    focus.start(task.id)
    snap = focus.current()

    clock.advance(minutes=3)
    focus.start(task.id)

    assert focus.current() == snap
    assert focus.abandon().state == TaskState.COLD


def test_two_processes_cannot_both_focus(settings: SimpleNamespace, clock: FakeClock) -> None:
    store_a = RecordStore(settings.db_path)
    store_b = RecordStore(settings.db_path)
    repo_a = TaskRepository(store_a, clock=clock)
    repo_b = TaskRepository(store_b, clock=clock)
    a = FocusSessionManager(store_a, repo_a, MemorySnapshotStore(), clock=clock)
    b = FocusSessionManager(store_b, repo_b, MemorySnapshotStore(), clock=clock)

    t1 = repo_a.create_task("One")
    t2 = repo_a.create_task("Two")

    a.start(t1.id)
    with pytest.raises(Conflict):
        b.start(t2.id)

    assert _focusing_count(repo_a) == 1
    assert b.current() is None


def test_mark_done_closes_own_session(repo: TaskRepository, focus: FocusSessionManager) -> None:
    task = repo.create_task("Finish line")
    focus.start(task.id)

    assert focus.mark_done(task.id).state == TaskState.DONE
    assert focus.current() is None
    assert _focusing_count(repo) == 0
    assert repo.list_sessions() == []


def test_delete_focusing_task_clears_session(
    repo: TaskRepository, focus: FocusSessionManager, settings: SimpleNamespace
) -> None:
    task = repo.create_task("Gone")
    focus.start(task.id)

    focus.delete_task(task.id)

    assert focus.current() is None
    assert not settings.session_path.exists()
