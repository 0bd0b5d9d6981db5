# src/deepwork/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The focus manager and repository depend on these Protocols rather than on the
SQLite/JSON implementations, which keeps tests free to swap in fakes.
"""

from collections.abc import Iterable, Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol

from ..tasks.task_models import FocusSessionSnapshot

Record = dict[str, Any]


class RecordTransaction(Protocol):
    def get(self, collection: str, record_id: str) -> Record: ...
    def put(self, collection: str, record: Record) -> Record: ...
    def delete(self, collection: str, record_id: str) -> bool: ...
    def list_all(self, collection: str) -> list[Record]: ...
    def list_by_index(self, collection: str, index: str, key: Any) -> list[Record]: ...


class RecordRepo(Protocol):
    """Persistent Store contract: atomic single-record ops + one bulk replace."""

    def get(self, collection: str, record_id: str) -> Record: ...
    def put(self, collection: str, record: Record) -> Record: ...
    def delete(self, collection: str, record_id: str) -> bool: ...
    def list_all(self, collection: str) -> list[Record]: ...
    def list_by_index(self, collection: str, index: str, key: Any) -> list[Record]: ...
    def replace_all(self, records: Mapping[str, Iterable[Record]]) -> dict[str, int]: ...
    def transaction(self, *, readonly: bool = False) -> AbstractContextManager[RecordTransaction]: ...


class SnapshotStore(Protocol):
    """Durable transient storage for the open focus session."""

    def load(self) -> FocusSessionSnapshot | None: ...
    def save(self, snapshot: FocusSessionSnapshot | None) -> None: ...
