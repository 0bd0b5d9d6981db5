# src/deepwork/focus/snapshot_file.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from ..errors import StorageFailure
from ..tasks.task_models import FocusSessionSnapshot

logger = logging.getLogger(__name__)


class SnapshotFile:
    """
    Durable home of the open focus session: a small JSON file.

    Writes go to a temp file first and are moved into place with os.replace,
    so a reader sees either the old snapshot or the new one, never half of it.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> FocusSessionSnapshot | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable focus snapshot at %s; ignoring it.", self._path, exc_info=True)
            return None
        if not isinstance(data, dict):
            logger.warning("Malformed focus snapshot at %s; ignoring it.", self._path)
            return None
        snap = FocusSessionSnapshot.from_dict(data)
        if snap is None:
            logger.warning("Incomplete focus snapshot at %s; ignoring it.", self._path)
        return snap

    def save(self, snapshot: FocusSessionSnapshot | None) -> None:
        try:
            if snapshot is None:
                self._path.unlink(missing_ok=True)
                logger.debug("Focus snapshot cleared path=%s", self._path)
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2), "utf-8")
            os.replace(tmp, self._path)
            with contextlib.suppress(OSError):
                os.chmod(self._path, 0o600)
            logger.debug("Focus snapshot saved task_id=%s path=%s", snapshot.task_id, self._path)
        except OSError as e:
            logger.exception("Failed to write focus snapshot to %s", self._path)
            raise StorageFailure(f"cannot write focus snapshot: {e}") from e
