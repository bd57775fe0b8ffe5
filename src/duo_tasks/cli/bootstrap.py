# src/duo_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the configured backend (store + auth), the user directory and the
  session into AppState.
"""

from __future__ import annotations

import logging

from ..backends.local_auth import LocalAuthProvider
from ..backends.local_store import LocalTaskStore
from ..config import get_settings
from ..core.ports import AuthProvider, RemoteTaskStore
from ..core.session import Session
from ..core.state import AppState
from ..users.directory import UserDirectory

logger = logging.getLogger(__name__)

BACKENDS = ("local", "supabase")


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


async def create_backend(settings) -> tuple[RemoteTaskStore, AuthProvider]:
    backend = str(getattr(settings, "backend", "local")).lower()
    if backend == "local":
        store = LocalTaskStore(settings.tasks_db_path, poll_interval=settings.poll_interval_seconds)
        return store, LocalAuthProvider()

    if backend == "supabase":
        # Imported lazily: the local backend must work without Supabase configured.
        from ..backends.supabase_store import connect

        return await connect(settings.supabase_url, settings.supabase_key, table=settings.tasks_table)

    raise ValueError(f"Unknown backend {backend!r}; expected one of: {', '.join(BACKENDS)}")


async def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    directory = UserDirectory.from_entries(settings.authorized_users)
    store, auth = await create_backend(settings)
    session = Session(
        auth,
        store,
        directory,
        optimistic_updates=settings.optimistic_updates,
        retention_days=settings.retention_days,
    )
    logger.info("State ready backend=%s users=%s", settings.backend, ", ".join(directory.emails))
    return AppState(settings=settings, session=session)
