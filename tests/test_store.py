# tests/test_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from deepwork.errors import InvalidArgument, NotFound, StorageFailure
from deepwork.storage.store import KeyRange, RecordStore


def test_put_get_delete_roundtrip(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")

    store.put("tasks", {"id": "t1", "title": "Write", "state": "cold"})
    assert store.get("tasks", "t1") == {"id": "t1", "title": "Write", "state": "cold"}

    # upsert replaces the whole document
    store.put("tasks", {"id": "t1", "title": "Write more", "state": "warm"})
    assert store.get("tasks", "t1")["title"] == "Write more"
    assert store.count("tasks") == 1

    assert store.delete("tasks", "t1") is True
    assert store.delete("tasks", "t1") is False
    with pytest.raises(NotFound):
        store.get("tasks", "t1")


def test_unknown_fields_are_preserved(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")
    rec = {"id": "s1", "task_id": "t1", "end_at": "2026-01-01T00:00:00.000Z", "extra": {"k": [1, 2]}}
    store.put("sessions", rec)
    assert store.get("sessions", "s1") == rec


def test_list_by_index_exact_and_range(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")
    store.put("tasks", {"id": "a", "state": "cold"})
    store.put("tasks", {"id": "b", "state": "focusing"})
    store.put("tasks", {"id": "c", "state": "cold"})

    assert [r["id"] for r in store.list_by_index("tasks", "by_state", "cold")] == ["a", "c"]
    assert [r["id"] for r in store.list_by_index("tasks", "by_state", "focusing")] == ["b"]

    for i, end in enumerate(["2026-03-01T10:00:00.000Z", "2026-03-02T10:00:00.000Z", "2026-03-03T10:00:00.000Z"]):
        store.put("sessions", {"id": f"s{i}", "task_id": "a", "end_at": end, "minutes": 5})

    hits = store.list_by_index(
        "sessions", "by_end_at", KeyRange("2026-03-02T00:00:00.000Z", "2026-03-03T10:00:00.000Z")
    )
    assert [r["id"] for r in hits] == ["s1", "s2"]
    assert len(store.list_by_index("sessions", "by_end_at", KeyRange(upper="2026-03-01T23:00:00.000Z"))) == 1
    assert len(store.list_by_index("sessions", "by_task", "a")) == 3


def test_transaction_rolls_back_on_error(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")
    store.put("tasks", {"id": "t1", "state": "cold"})

    with pytest.raises(RuntimeError):
        with store.transaction() as tx:
            tx.put("tasks", {"id": "t1", "state": "warm"})
            tx.put("sessions", {"id": "s1", "task_id": "t1", "end_at": "x"})
            raise RuntimeError("boom")

    assert store.get("tasks", "t1")["state"] == "cold"
    assert store.list_all("sessions") == []


def test_replace_all_is_all_or_nothing(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")
    store.put("tasks", {"id": "old", "state": "cold"})
    store.put("settings", {"id": "durationFormat", "value": "hm"})

    with pytest.raises(InvalidArgument):
        store.replace_all(
            {
                "tasks": [{"id": "new", "state": "warm"}],
                "settings": [{"value": "missing id"}],
            }
        )

    assert [r["id"] for r in store.list_all("tasks")] == ["old"]
    assert store.get("settings", "durationFormat")["value"] == "hm"

    counts = store.replace_all({"tasks": [{"id": "new", "state": "warm"}], "settings": []})
    assert counts == {"tasks": 1, "settings": 0}
    assert [r["id"] for r in store.list_all("tasks")] == ["new"]
    assert store.list_all("settings") == []


def test_rejects_unknown_collection_and_bad_records(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "db.sqlite3")
    with pytest.raises(InvalidArgument):
        store.put("nope", {"id": "x"})
    with pytest.raises(InvalidArgument):
        store.put("tasks", {"title": "no id"})
    with pytest.raises(InvalidArgument):
        store.put("tasks", {"id": "x", "bad": object()})
    with pytest.raises(InvalidArgument):
        store.put("tasks", {"id": "x", "state": {"nested": 1}})
    with pytest.raises(InvalidArgument):
        store.put("sessions", {"id": "s", "task_id": 7})
    with pytest.raises(InvalidArgument):
        store.list_by_index("tasks", "by_title", "x")


def test_sqlite_errors_surface_as_storage_failure(tmp_path: Path) -> None:
    db = tmp_path / "db.sqlite3"
    store = RecordStore(db)

    conn = sqlite3.connect(str(db))
    conn.execute("DROP TABLE tasks")
    conn.commit()
    conn.close()

    with pytest.raises(StorageFailure):
        store.get("tasks", "t1")
    with pytest.raises(StorageFailure):
        store.put("tasks", {"id": "t1"})
