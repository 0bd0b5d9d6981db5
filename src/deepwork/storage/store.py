# src/deepwork/storage/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import InvalidArgument, NotFound, StorageFailure

logger = logging.getLogger(__name__)

Record = dict[str, Any]

# collection -> {index name: indexed field}
COLLECTIONS: dict[str, dict[str, str]] = {
    "tasks": {"by_state": "state"},
    "sessions": {"by_task": "task_id", "by_end_at": "end_at"},
    "settings": {},
}


@dataclass(frozen=True, slots=True)
class KeyRange:
    """Inclusive bounds for an index lookup. None means unbounded."""

    lower: Any = None
    upper: Any = None


def _encode(record: Record) -> str:
    try:
        return json.dumps(record, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"record is not JSON-serializable: {e}") from e


def _decode(raw: str, collection: str) -> Record:
    try:
        val = json.loads(raw)
    except ValueError as e:
        raise StorageFailure(f"corrupt record in {collection}") from e
    if not isinstance(val, dict):
        raise StorageFailure(f"corrupt record in {collection}")
    return val


def _index_columns(collection: str) -> dict[str, str]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise InvalidArgument(f"unknown collection: {collection!r}") from None


class StoreTransaction:
    """
    Record operations bound to one open SQLite transaction.

    Obtained from RecordStore.transaction(); everything done through one handle
    commits or rolls back together.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, collection: str, record_id: str) -> Record:
        _index_columns(collection)
        row = self._conn.execute(
            f"SELECT data FROM {collection} WHERE id = ?", (str(record_id),)
        ).fetchone()
        if row is None:
            raise NotFound(
                f"{collection}/{record_id} not found", collection=collection, record_id=str(record_id)
            )
        return _decode(row["data"], collection)

    def put(self, collection: str, record: Record) -> Record:
        """Upsert by record["id"]."""
        indexes = _index_columns(collection)
        rec_id = record.get("id") if isinstance(record, dict) else None
        if not isinstance(rec_id, str) or not rec_id:
            raise InvalidArgument(f"{collection} record needs a non-empty string id")

        fields = list(dict.fromkeys(indexes.values()))
        keys = [record.get(f) for f in fields]
        for f, v in zip(fields, keys):
            if v is not None and not isinstance(v, str):
                raise InvalidArgument(
                    f"{collection}/{rec_id}: indexed field {f!r} must be a string, got {type(v).__name__}"
                )
        cols = ["id", "data", *fields]
        params = [rec_id, _encode(record), *keys]
        updates = ", ".join(f"{c} = excluded.{c}" for c in cols[1:])
        self._conn.execute(
            f"INSERT INTO {collection}({', '.join(cols)}) "
            f"VALUES ({', '.join('?' for _ in cols)}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}",
            params,
        )
        return record

    def delete(self, collection: str, record_id: str) -> bool:
        _index_columns(collection)
        cur = self._conn.execute(f"DELETE FROM {collection} WHERE id = ?", (str(record_id),))
        return cur.rowcount > 0

    def list_all(self, collection: str) -> list[Record]:
        _index_columns(collection)
        rows = self._conn.execute(f"SELECT data FROM {collection} ORDER BY id ASC").fetchall()
        return [_decode(r["data"], collection) for r in rows]

    def list_by_index(self, collection: str, index: str, key: Any) -> list[Record]:
        indexes = _index_columns(collection)
        field = indexes.get(index)
        if field is None:
            raise InvalidArgument(f"unknown index {index!r} on {collection}")

        where: list[str] = []
        params: list[Any] = []
        if isinstance(key, KeyRange):
            if key.lower is not None:
                where.append(f"{field} >= ?")
                params.append(key.lower)
            if key.upper is not None:
                where.append(f"{field} <= ?")
                params.append(key.upper)
            if not where:
                where.append(f"{field} IS NOT NULL")
        else:
            where.append(f"{field} = ?")
            params.append(key)

        rows = self._conn.execute(
            f"SELECT data FROM {collection} WHERE {' AND '.join(where)} ORDER BY {field} ASC, id ASC",
            params,
        ).fetchall()
        return [_decode(r["data"], collection) for r in rows]

    def clear(self, collection: str) -> None:
        _index_columns(collection)
        self._conn.execute(f"DELETE FROM {collection}")

    def count(self, collection: str) -> int:
        _index_columns(collection)
        (n,) = self._conn.execute(f"SELECT COUNT(*) FROM {collection}").fetchone()
        return int(n)


class RecordStore:
    """
    SQLite-backed document store with three fixed collections.

    Each collection is a table of (id, data JSON) plus columns copied out of the
    document for its indexes:
    - tasks.state      (by_state)
    - sessions.task_id (by_task)
    - sessions.end_at  (by_end_at)

    Concurrency:
    - each operation opens its own SQLite connection
    - write transactions start with BEGIN IMMEDIATE, so the write lock is held
      from the first read; check-then-write sequences cannot interleave across
      connections or processes

    Any sqlite3.Error rolls the transaction back and surfaces as StorageFailure.
    """

    def __init__(self, db_path: str | Path = "deepwork.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count("tasks")
        except StorageFailure:
            total = -1
        logger.info("RecordStore ready db=%s tasks=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly in transaction().
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            logger.exception("Cannot open database %s", self._db_path)
            raise StorageFailure(f"cannot open database {self._db_path}") from e
        try:
            for collection, indexes in COLLECTIONS.items():
                fields = list(dict.fromkeys(indexes.values()))
                extra = "".join(f", {f} TEXT" for f in fields)
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {collection} "
                    f"(id TEXT PRIMARY KEY, data TEXT NOT NULL{extra})"
                )
                for name, field in indexes.items():
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{name} ON {collection}({field})"
                    )
        except sqlite3.Error as e:
            logger.exception("Schema setup failed db=%s", self._db_path)
            raise StorageFailure("schema setup failed") from e
        finally:
            conn.close()

    # ---- transactions ----

    @contextlib.contextmanager
    def transaction(self, *, readonly: bool = False) -> Iterator[StoreTransaction]:
        """
        Open one atomic unit of work.

        Commits when the block exits normally; rolls back on any exception.
        sqlite3 errors are re-raised as StorageFailure, domain errors propagate as-is.
        """
        try:
            conn = self._get_conn()
            conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            logger.exception("Failed to begin transaction db=%s", self._db_path)
            raise StorageFailure(f"cannot begin transaction: {e}") from e

        try:
            yield StoreTransaction(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            logger.exception("Storage operation failed; rolled back.")
            raise StorageFailure(f"storage operation failed: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.debug("Rollback failed.", exc_info=True)

    # ---- public API (single-record operations, each atomic) ----

    def get(self, collection: str, record_id: str) -> Record:
        with self.transaction(readonly=True) as tx:
            return tx.get(collection, record_id)

    def put(self, collection: str, record: Record) -> Record:
        with self.transaction() as tx:
            return tx.put(collection, record)

    def delete(self, collection: str, record_id: str) -> bool:
        with self.transaction() as tx:
            return tx.delete(collection, record_id)

    def list_all(self, collection: str) -> list[Record]:
        with self.transaction(readonly=True) as tx:
            return tx.list_all(collection)

    def list_by_index(self, collection: str, index: str, key: Any) -> list[Record]:
        with self.transaction(readonly=True) as tx:
            return tx.list_by_index(collection, index, key)

    def count(self, collection: str) -> int:
        with self.transaction(readonly=True) as tx:
            return tx.count(collection)

    def replace_all(self, records: Mapping[str, Iterable[Record]]) -> dict[str, int]:
        """
        Discard and rewrite every named collection in one transaction.

        Either all collections are replaced or none is touched.
        """
        for collection in records:
            _index_columns(collection)

        counts: dict[str, int] = {}
        with self.transaction() as tx:
            for collection, recs in records.items():
                tx.clear(collection)
                n = 0
                for rec in recs:
                    tx.put(collection, rec)
                    n += 1
                counts[collection] = n
        logger.info("replace_all committed counts=%s", counts)
        return counts
