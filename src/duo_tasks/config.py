# src/duo_tasks/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (the local backend needs none).

Environment variables (all optional):
    DUO_APP_NAME                App display name (default: duo-tasks).
    DUO_LOG_LEVEL               Console log level (default: INFO).
    DUO_DATA_DIR                Local data directory (default: .local/duo-tasks).
    DUO_BACKEND                 "local" (SQLite) or "supabase" (default: local).
    DUO_TASKS_DB_PATH           SQLite path for the local backend (default: <data_dir>/tasks.sqlite3).
    DUO_POLL_INTERVAL_SECONDS   Local change-feed poll interval (default: 1.0).
    DUO_OPTIMISTIC_UPDATES      Patch the cache before the store confirms (default: true).
    DUO_RETENTION_DAYS          Purge completed tasks older than this (default: 7).
    DUO_AUTHORIZED_USERS        Two "email=Name" entries, comma separated.
    DUO_SUPABASE_URL            Supabase project URL (supabase backend).
    DUO_SUPABASE_KEY            Supabase anon key (supabase backend).
    DUO_TASKS_TABLE             Supabase table name (default: tasks).
    DUO_USER_EMAIL              Email to sign in with (else asked at startup).
    DUO_USER_PASSWORD           Password for the supabase backend.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "DUO"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_opt(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


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


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    """Comma separated list (entries may contain spaces, e.g. display names)."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


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

    # ---- Backend ----
    backend: str
    tasks_db_path: Path
    poll_interval_seconds: float
    supabase_url: str | None
    supabase_key: str | None
    tasks_table: str

    # ---- Behaviour ----
    optimistic_updates: bool
    retention_days: int
    authorized_users: list[str]

    # ---- Sign-in ----
    user_email: str | None
    user_password: str | None

    # ---- Local data paths (ignored by git) ----
    data_dir: Path

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "duo-tasks").strip() or "duo-tasks"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        backend = _env(_k("BACKEND"), "local").strip().lower() or "local"
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/duo-tasks"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            backend=backend,
            tasks_db_path=tasks_db_path,
            poll_interval_seconds=max(0.05, _env_float(_k("POLL_INTERVAL_SECONDS"), 1.0)),
            supabase_url=_env_opt(_k("SUPABASE_URL")),
            supabase_key=_env_opt(_k("SUPABASE_KEY")),
            tasks_table=_env(_k("TASKS_TABLE"), "tasks").strip() or "tasks",
            optimistic_updates=_env_bool(_k("OPTIMISTIC_UPDATES"), True),
            retention_days=max(0, _env_int(_k("RETENTION_DAYS"), 7)),
            authorized_users=_env_list(
                _k("AUTHORIZED_USERS"),
                ["alex@example.com=Alex", "sam@example.com=Sam"],
            ),
            user_email=_env_opt(_k("USER_EMAIL")),
            user_password=_env_opt(_k("USER_PASSWORD")),
            data_dir=data_dir,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
