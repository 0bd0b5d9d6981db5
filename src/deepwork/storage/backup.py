# src/deepwork/storage/backup.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..core.ports import RecordRepo
from ..errors import InvalidArgument, StorageFailure, VersionMismatch
from ..timeutil import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0.0"
BACKUP_COLLECTIONS = ("tasks", "sessions", "settings")


def export_backup(store: RecordRepo, *, clock: Clock = utc_now) -> dict[str, Any]:
    """
    Snapshot every record of every collection.

    Shape: {version, exported_at, tasks: [...], sessions: [...], settings: [...]}.
    """
    with store.transaction(readonly=True) as tx:
        payload: dict[str, Any] = {
            "version": BACKUP_VERSION,
            "exported_at": to_iso(clock()),
        }
        for name in BACKUP_COLLECTIONS:
            payload[name] = tx.list_all(name)
    logger.info(
        "Backup exported %s",
        {name: len(payload[name]) for name in BACKUP_COLLECTIONS},
    )
    return payload


def _validate_payload(payload: Any) -> dict[str, list[dict[str, Any]]]:
    if not isinstance(payload, dict):
        raise InvalidArgument("backup must be a JSON object")

    version = payload.get("version")
    if version != BACKUP_VERSION:
        raise VersionMismatch(
            f"backup version {version!r} does not match expected {BACKUP_VERSION!r}",
            expected=BACKUP_VERSION,
            actual=version,
        )

    out: dict[str, list[dict[str, Any]]] = {}
    for name in BACKUP_COLLECTIONS:
        recs = payload.get(name)
        if not isinstance(recs, list):
            raise InvalidArgument(f"backup field {name!r} must be a list")
        for i, rec in enumerate(recs):
            if not isinstance(rec, dict) or not isinstance(rec.get("id"), str) or not rec["id"]:
                raise InvalidArgument(f"backup {name}[{i}] must be an object with a string id")
        out[name] = recs

    focusing = [rec["id"] for rec in out["tasks"] if rec.get("state") == "focusing"]
    if len(focusing) > 1:
        raise InvalidArgument(f"backup has {len(focusing)} focusing tasks (at most one allowed): {focusing}")
    return out


def import_backup(store: RecordRepo, payload: Any) -> dict[str, int]:
    """
    Replace tasks, sessions and settings wholesale with the backup's content.

    Destructive: existing records are discarded, not merged. The caller must get
    explicit user confirmation first. All-or-nothing.
    """
    collections = _validate_payload(payload)
    counts = store.replace_all(collections)
    logger.info("Backup imported exported_at=%s counts=%s", payload.get("exported_at"), counts)
    return counts


def write_backup_file(path: str | Path, payload: dict[str, Any]) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, path)
        with contextlib.suppress(OSError):
            os.chmod(path, 0o600)
    except OSError as e:
        logger.exception("Failed to write backup to %s", path)
        raise StorageFailure(f"cannot write backup file {path}: {e}") from e
    logger.info("Backup written to %s", path)
    return path


def read_backup_file(path: str | Path) -> Any:
    path = Path(path)
    try:
        raw = path.read_text("utf-8")
    except OSError as e:
        raise InvalidArgument(f"cannot read backup file {path}: {e}") from e
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidArgument(f"backup file {path} is not valid JSON: {e}") from e
