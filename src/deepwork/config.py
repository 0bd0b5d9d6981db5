# src/deepwork/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing is read at import time except the environment.
- Components get settings injected; tests pass their own namespace.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "DEEPWORK"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_to_file: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    session_path: Path
    backup_dir: Path

    # ---- Recommendation / defaults ----
    recommend_category: str
    default_window_minutes: int
    default_custom_minutes: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "deepwork").strip() or "deepwork"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_to_file = _env_bool(_k("LOG_TO_FILE"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/deepwork"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "deepwork.sqlite3")
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "focus_session.json")
        backup_dir = _env_path(_k("BACKUP_DIR"), data_dir / "backups")

        recommend_category = _env(_k("RECOMMEND_CATEGORY"), "work").strip().lower() or "work"
        default_window_minutes = _env_int(_k("DEFAULT_WINDOW_MINUTES"), 40)
        default_custom_minutes = _env_int(_k("DEFAULT_CUSTOM_MINUTES"), 50)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_to_file=log_to_file,
            data_dir=data_dir,
            db_path=db_path,
            session_path=session_path,
            backup_dir=backup_dir,
            recommend_category=recommend_category,
            default_window_minutes=default_window_minutes,
            default_custom_minutes=default_custom_minutes,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
