# src/duo_tasks/tasks/events.py

"""
Change-feed events and the reconciliation rule that applies them to a cache.

A feed yields Inserted / Updated / Deleted in the order the store committed
them. apply_event() is pure: it takes the cached list (ordered by created_at,
newest first) and returns the new list. It must tolerate repeated and
out-of-order delivery:

- Inserted for an id already cached replaces that entry,
- Updated for an id not cached inserts it,
- Deleted for an id not cached is a no-op.

Last applied wins per task id; fields are never merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .task_models import Task

logger = logging.getLogger(__name__)


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, raw: str | None) -> ChangeType | None:
        if not raw:
            return None
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Inserted:
    task: Task

    @property
    def task_id(self) -> str:
        return self.task.id


@dataclass(frozen=True, slots=True)
class Updated:
    task: Task

    @property
    def task_id(self) -> str:
        return self.task.id


@dataclass(frozen=True, slots=True)
class Deleted:
    task_id: str


TaskEvent = Inserted | Updated | Deleted


def event_from_change(
    change_type: str | None,
    new_row: dict[str, Any] | None,
    old_row: dict[str, Any] | None = None,
) -> TaskEvent | None:
    """Build an event from a store change record; returns None for records we can't use."""
    kind = ChangeType.parse(change_type)
    if kind is None:
        logger.warning("Ignoring change with unknown type=%r", change_type)
        return None

    if kind is ChangeType.DELETE:
        source = old_row or new_row or {}
        task_id = source.get("id")
        if not task_id:
            logger.warning("Ignoring DELETE change without an id")
            return None
        return Deleted(task_id=str(task_id))

    if not new_row or not new_row.get("id"):
        logger.warning("Ignoring %s change without a row", kind.value)
        return None

    task = Task.from_row(new_row)
    if kind is ChangeType.INSERT:
        return Inserted(task)
    return Updated(task)


def _without(tasks: list[Task], task_id: str) -> list[Task]:
    return [t for t in tasks if t.id != task_id]


def _insert_ordered(tasks: list[Task], task: Task) -> list[Task]:
    for i, existing in enumerate(tasks):
        if existing.created_at <= task.created_at:
            return [*tasks[:i], task, *tasks[i:]]
    return [*tasks, task]


def apply_event(tasks: list[Task], event: TaskEvent) -> list[Task]:
    if isinstance(event, Deleted):
        return _without(tasks, event.task_id)

    task = event.task
    for i, existing in enumerate(tasks):
        if existing.id == task.id:
            if existing.created_at == task.created_at:
                out = list(tasks)
                out[i] = task
                return out
            # created_at is immutable; a differing value means the cached copy was wrong
            return _insert_ordered(_without(tasks, task.id), task)

    return _insert_ordered(tasks, task)
