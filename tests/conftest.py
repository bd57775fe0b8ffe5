# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from duo_tasks.backends.local_auth import local_user_id
from duo_tasks.tasks.task_models import Identity
from duo_tasks.users.directory import UserDirectory

from .fakes import FakeTaskStore

ALEX_EMAIL = "alex@example.com"
SAM_EMAIL = "sam@example.com"

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_row(
    task_id: str,
    *,
    title: str = "Task",
    created_by: Identity,
    assigned_to: str | None = None,
    completed: bool = False,
    completed_at: datetime | None = None,
    created_at: datetime = NOW,
    description: str = "",
) -> dict:
    return {
        "id": task_id,
        "title": title,
        "description": description,
        "completed": completed,
        "completed_at": completed_at.isoformat() if completed_at else None,
        "created_by": created_by.id,
        "created_by_email": created_by.email,
        "assigned_to": assigned_to or created_by.email,
        "created_at": created_at.isoformat(),
        "updated_at": created_at.isoformat(),
    }


@pytest.fixture()
def alex() -> Identity:
    # Same id the local auth provider derives, so session tests line up.
    return Identity(id=local_user_id(ALEX_EMAIL), email=ALEX_EMAIL)


@pytest.fixture()
def sam() -> Identity:
    return Identity(id=local_user_id(SAM_EMAIL), email=SAM_EMAIL)


@pytest.fixture()
def directory() -> UserDirectory:
    return UserDirectory({ALEX_EMAIL: "Alex", SAM_EMAIL: "Sam"})


@pytest.fixture()
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="duo-tasks-test",
        backend="local",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        poll_interval_seconds=0.02,
        optimistic_updates=True,
        retention_days=7,
        authorized_users=[f"{ALEX_EMAIL}=Alex", f"{SAM_EMAIL}=Sam"],
        supabase_url=None,
        supabase_key=None,
        tasks_table="tasks",
        user_email=None,
        user_password=None,
    )


def days_ago(n: float) -> datetime:
    return NOW - timedelta(days=n)
