# src/deepwork/user_settings.py

"""
User preferences kept in the store's `settings` collection.

The key set is closed: each SettingKey has its own value type, default and
validator. Records look like {"id": key, "value": ..., "updated_at": iso}.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .core.ports import RecordRepo
from .errors import InvalidArgument, NotFound
from .tasks.task_repo import validate_minutes
from .timeutil import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

SETTINGS = "settings"

TIME_PRESETS = (20, 40, 60, 120)

DEFAULT_TIME_PREFERENCE = 40
DEFAULT_CUSTOM_MINUTES = 50


class SettingKey(StrEnum):
    TIME_PREFERENCE_MINUTES = "timePreferenceMinutes"
    LAST_CUSTOM_MINUTES = "lastCustomMinutes"
    DURATION_FORMAT = "durationFormat"


class DurationFormat(StrEnum):
    MINUTES = "minutes"
    HM = "hm"


def _minutes(value: Any) -> int:
    return validate_minutes(value, what="minutes")


def _duration_format(value: Any) -> str:
    try:
        return DurationFormat(value).value
    except ValueError:
        raise InvalidArgument(f"duration format must be one of {[f.value for f in DurationFormat]}") from None


@dataclass(frozen=True, slots=True)
class _SettingSpec:
    default: Any
    validate: Callable[[Any], Any]


def format_minutes(minutes: int | float, fmt: DurationFormat | str = DurationFormat.HM) -> str:
    """'25min' for the minutes format; '1h 5m' / '2h' / '45m' for hm."""
    safe = max(0, round(minutes))
    if fmt == DurationFormat.MINUTES:
        return f"{safe}min"
    hours, mins = divmod(safe, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"


class UserSettings:
    def __init__(
        self,
        store: RecordRepo,
        *,
        default_time_preference: int = DEFAULT_TIME_PREFERENCE,
        default_custom_minutes: int = DEFAULT_CUSTOM_MINUTES,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock
        self._specs: dict[SettingKey, _SettingSpec] = {
            SettingKey.TIME_PREFERENCE_MINUTES: _SettingSpec(default_time_preference, _minutes),
            SettingKey.LAST_CUSTOM_MINUTES: _SettingSpec(default_custom_minutes, _minutes),
            SettingKey.DURATION_FORMAT: _SettingSpec(DurationFormat.HM.value, _duration_format),
        }

    @staticmethod
    def _key(key: SettingKey | str) -> SettingKey:
        try:
            return SettingKey(key)
        except ValueError:
            raise InvalidArgument(f"unknown setting: {key!r}") from None

    def get(self, key: SettingKey | str) -> Any:
        k = self._key(key)
        spec = self._specs[k]
        try:
            rec = self._store.get(SETTINGS, k.value)
        except NotFound:
            return spec.default
        try:
            return spec.validate(rec.get("value"))
        except InvalidArgument:
            logger.warning("Ignoring invalid stored value for %s: %r", k.value, rec.get("value"))
            return spec.default

    def set(self, key: SettingKey | str, value: Any) -> Any:
        k = self._key(key)
        clean = self._specs[k].validate(value)
        self._store.put(SETTINGS, {"id": k.value, "value": clean, "updated_at": to_iso(self._clock())})
        logger.debug("Setting saved %s=%r", k.value, clean)
        return clean

    def all(self) -> dict[str, Any]:
        return {k.value: self.get(k) for k in SettingKey}

    # ---- typed accessors ----

    def time_preference(self) -> int:
        return self.get(SettingKey.TIME_PREFERENCE_MINUTES)

    def last_custom_minutes(self) -> int:
        return self.get(SettingKey.LAST_CUSTOM_MINUTES)

    def duration_format(self) -> DurationFormat:
        return DurationFormat(self.get(SettingKey.DURATION_FORMAT))

    def save_time_preference(self, minutes: int, custom: int | None = None) -> int:
        """Store the preferred window; a non-preset choice also remembers the custom value."""
        minutes = self.set(SettingKey.TIME_PREFERENCE_MINUTES, minutes)
        if minutes not in TIME_PRESETS and custom is not None:
            self.set(SettingKey.LAST_CUSTOM_MINUTES, custom)
        return minutes

    def format(self, minutes: int | float) -> str:
        return format_minutes(minutes, self.duration_format())
