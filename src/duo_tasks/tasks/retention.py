# src/duo_tasks/tasks/retention.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta, tzinfo

from ..core.ports import RemoteTaskStore
from .task_models import Task

logger = logging.getLogger(__name__)

RETENTION_DAYS = 7


def local_day(dt: datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of dt in tz (the machine's local zone when tz is None)."""
    if dt.tzinfo is None:
        # naive values are already local wall-clock time
        return dt.date()
    return dt.astimezone(tz).date()


def is_visible(task: Task, now: datetime, tz: tzinfo | None = None) -> bool:
    if not task.completed:
        return True
    if task.completed_at is None:
        return True
    return local_day(task.completed_at, tz) == local_day(now, tz)


def visible(tasks: Iterable[Task], now: datetime, tz: tzinfo | None = None) -> list[Task]:
    """
    Tasks to render: everything open, plus tasks completed today.

    Tasks completed on an earlier day stay in the cache and in the store until
    purge_old_completed() removes them; they are only hidden here.
    """
    return [t for t in tasks if is_visible(t, now, tz)]


def purge_cutoff(now: datetime, retention_days: int = RETENTION_DAYS) -> datetime:
    return now - timedelta(days=max(0, int(retention_days)))


async def purge_old_completed(
    store: RemoteTaskStore,
    now: datetime,
    *,
    retention_days: int = RETENTION_DAYS,
) -> int:
    """
    Best-effort sweep: delete tasks completed more than retention_days ago.

    Never raises. Returns the number of deleted rows (0 on failure).
    """
    cutoff = purge_cutoff(now, retention_days)
    try:
        deleted = await store.delete_completed_before(cutoff)
    except Exception:
        logger.exception("Retention purge failed cutoff=%s", cutoff.isoformat())
        return 0

    if deleted:
        logger.info("Retention purge removed %d completed tasks older than %s", deleted, cutoff.isoformat())
    else:
        logger.debug("Retention purge: nothing older than %s", cutoff.isoformat())
    return deleted
