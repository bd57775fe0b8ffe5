# src/duo_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The task client, the retention sweep and the session depend on these Protocols
instead of concrete backends. This keeps the local SQLite backend and the
Supabase backend swappable and makes testing with in-memory fakes easy.
"""

from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..tasks.events import TaskEvent
    from ..tasks.task_models import Identity

TaskRow = dict[str, Any]
# Flat task row as stored remotely: keys match Task field names, timestamps are ISO strings.

AuthListener = Callable[["Identity | None"], None]


class ChangeFeed(Protocol):
    """
    Cancellable stream of change events for the tasks collection.

    Iterating yields events in the order the store committed them.
    close() stops delivery; iteration then ends.
    """

    def __aiter__(self) -> AsyncIterator[TaskEvent]: ...

    async def close(self) -> None: ...


class RemoteTaskStore(Protocol):
    """
    Authoritative task storage.

    Every method may raise FetchError (reads) or StoreWriteError (writes).
    update() and insert() refresh updated_at on the stored row.
    """

    async def fetch_all(self) -> list[TaskRow]: ...

    async def insert(self, row: TaskRow) -> TaskRow: ...

    async def update(self, task_id: str, patch: TaskRow) -> TaskRow | None: ...

    async def delete(self, task_id: str) -> None: ...

    async def delete_completed_before(self, cutoff: datetime) -> int: ...

    async def subscribe(self) -> ChangeFeed: ...

    async def close(self) -> None: ...


class AuthProvider(Protocol):
    """Opaque identity source (sign-in / sign-out / session-change notification)."""

    async def sign_in(self, email: str, password: str | None = None) -> Identity: ...

    async def sign_out(self) -> None: ...

    def current_identity(self) -> Identity | None: ...

    def on_change(self, listener: AuthListener) -> Callable[[], None]: ...
