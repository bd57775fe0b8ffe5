# src/duo_tasks/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

# Fields a caller may change through TaskStoreClient.update().
MUTABLE_FIELDS = frozenset({"title", "description", "completed", "assigned_to"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(raw: Any) -> datetime | None:
    """
    Accept datetime / ISO-8601 string / epoch seconds, return an aware datetime.

    Naive values are treated as UTC (sqlite and some REST payloads drop the offset).
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, (int, float)):
        dt = datetime.fromtimestamp(float(raw), tz=timezone.utc)
    else:
        dt = datetime.fromisoformat(str(raw).strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_ts(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


@dataclass(frozen=True, slots=True)
class Identity:
    """An authenticated actor: unique id plus the email used for authorization."""

    id: str
    email: str

    @property
    def key(self) -> str:
        return self.email.strip().lower()


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str
    completed: bool
    completed_at: datetime | None

    created_by: str
    created_by_email: str
    assigned_to: str  # assignee email

    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Task:
        created_at = parse_ts(row.get("created_at")) or utc_now()
        updated_at = parse_ts(row.get("updated_at")) or created_at
        completed = bool(row.get("completed") or False)
        completed_at = None
        if completed:
            # Rows written before completed_at existed: fall back to the last mutation.
            completed_at = parse_ts(row.get("completed_at")) or updated_at
        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or ""),
            description=str(row.get("description") or ""),
            completed=completed,
            completed_at=completed_at,
            created_by=str(row.get("created_by") or ""),
            created_by_email=str(row.get("created_by_email") or ""),
            assigned_to=str(row.get("assigned_to") or row.get("created_by_email") or ""),
            created_at=created_at,
            updated_at=updated_at,
        )

    def patched(self, patch: dict[str, Any]) -> Task:
        """Return a copy with a row-style patch applied (used for optimistic updates)."""
        changes: dict[str, Any] = {}
        for key, value in patch.items():
            if key in ("completed_at", "updated_at", "created_at"):
                changes[key] = parse_ts(value)
            elif key in MUTABLE_FIELDS:
                changes[key] = value
        return replace(self, **changes)
