# src/duo_tasks/tasks/client.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..core.errors import NotAuthenticated, StoreWriteError
from ..core.ports import ChangeFeed, RemoteTaskStore, TaskRow
from .events import TaskEvent, apply_event
from .task_models import MUTABLE_FIELDS, Identity, Task, format_ts, utc_now

logger = logging.getLogger(__name__)

CacheListener = Callable[["TaskEvent | None"], None]


class TaskStoreClient:
    """
    Local cache of all tasks, kept in sync with a RemoteTaskStore.

    The cache (newest created_at first) is filled by load() and then maintained
    only by change-feed events. Writes go to the remote store and are not
    applied locally, so a task never appears twice; the one exception is the
    optional optimistic patch in update(), which is tagged pending and replaced
    by the next confirmed event for that task.

    Lifecycle:
    - start()    -> subscribe to the feed, then fetch everything
    - teardown() -> cancel the feed consumer and drop the cache

    One instance per signed-in session; all cache mutations go through it.
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        identity: Callable[[], Identity | None],
        *,
        optimistic_updates: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._identity = identity
        self._optimistic = bool(optimistic_updates)
        self._clock = clock

        self._tasks: list[Task] = []
        self._pending: dict[str, Task] = {}  # task_id -> confirmed copy before the optimistic patch
        self._inflight: set[str] = set()
        self._listeners: list[CacheListener] = []

        self._feed: ChangeFeed | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._loaded = False

    # ---- read side ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def subscribed(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def is_pending(self, task_id: str) -> bool:
        """True while an optimistic patch for task_id awaits its confirming event."""
        return task_id in self._pending

    def is_busy(self, task_id: str) -> bool:
        """True while a write for task_id is in flight (the UI should not resubmit)."""
        return task_id in self._inflight

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _notify(self, event: TaskEvent | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Cache listener failed")

    # ---- lifecycle ----

    async def start(self) -> None:
        # Subscribe first so changes committed while the fetch runs are not lost.
        await self.subscribe()
        await self.load()

    async def load(self) -> list[Task]:
        """Replace the cache with a full fetch. FetchError leaves the cache untouched."""
        rows = await self._store.fetch_all()
        tasks = [Task.from_row(r) for r in rows]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        self._tasks = tasks
        self._pending.clear()
        self._loaded = True
        logger.info("Loaded %d tasks", len(tasks))
        self._notify(None)
        return self.tasks

    async def subscribe(self) -> None:
        if self.subscribed:
            return
        feed = await self._store.subscribe()
        self._feed = feed
        self._consumer = asyncio.create_task(self._consume(feed), name="duo-tasks-feed")
        logger.debug("Subscribed to task change feed")

    async def _consume(self, feed: ChangeFeed) -> None:
        try:
            async for event in feed:
                self.apply(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Task change feed stopped with an error")

    async def teardown(self) -> None:
        consumer, self._consumer = self._consumer, None
        feed, self._feed = self._feed, None

        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if feed is not None:
            try:
                await feed.close()
            except Exception:
                logger.debug("Feed close failed", exc_info=True)

        self._tasks = []
        self._pending.clear()
        self._inflight.clear()
        self._loaded = False
        logger.debug("Task client torn down")

    # ---- reconciliation ----

    def apply(self, event: TaskEvent) -> None:
        """Apply one confirmed change; a confirmed event always beats a pending patch."""
        self._pending.pop(event.task_id, None)
        self._tasks = apply_event(self._tasks, event)
        logger.debug("Applied %s task_id=%s", type(event).__name__, event.task_id)
        self._notify(event)

    def _replace_local(self, task: Task) -> None:
        self._tasks = [task if t.id == task.id else t for t in self._tasks]

    # ---- write side ----

    def _require_identity(self) -> Identity:
        identity = self._identity()
        if identity is None:
            raise NotAuthenticated()
        return identity

    async def create(
        self,
        title: str,
        description: str = "",
        assigned_to: str | None = None,
    ) -> Task:
        """
        Write a new task created by the current identity.

        The cache is not touched; the task shows up when its Inserted event arrives.
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValueError("title is required")
        identity = self._require_identity()

        now = self._clock()
        assignee = (assigned_to or identity.email).strip().lower()
        row: TaskRow = {
            "id": str(uuid.uuid4()),
            "title": clean_title,
            "description": (description or "").strip(),
            "completed": False,
            "completed_at": None,
            "created_by": identity.id,
            "created_by_email": identity.email.strip().lower(),
            "assigned_to": assignee,
            "created_at": format_ts(now),
            "updated_at": format_ts(now),
        }
        stored = await self._store.insert(row)
        task = Task.from_row(stored or row)
        logger.info("Task created id=%s assigned_to=%s", task.id, task.assigned_to)
        return task

    def _build_patch(self, task_id: str, fields: dict[str, Any]) -> TaskRow:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        patch: TaskRow = {}
        if "title" in fields:
            title = str(fields["title"] or "").strip()
            if not title:
                raise ValueError("title is required")
            patch["title"] = title
        if "description" in fields:
            patch["description"] = str(fields["description"] or "").strip()
        if "assigned_to" in fields:
            assignee = str(fields["assigned_to"] or "").strip().lower()
            if not assignee:
                raise ValueError("assigned_to is required")
            patch["assigned_to"] = assignee
        if "completed" in fields:
            completed = bool(fields["completed"])
            patch["completed"] = completed
            cached = self.get(task_id)
            if not completed:
                patch["completed_at"] = None
            elif cached is None or not cached.completed or cached.completed_at is None:
                patch["completed_at"] = format_ts(self._clock())
        return patch

    async def update(self, task_id: str, **fields: Any) -> Task | None:
        """
        Write a partial update (title / description / completed / assigned_to).

        Permission checks are the caller's job (see tasks.policy). completed_at
        follows completed. A store that matches no row counts as a failed
        write. On StoreWriteError an optimistic patch is rolled back.
        """
        patch = self._build_patch(task_id, fields)
        if not patch:
            return self.get(task_id)

        before = self.get(task_id)
        patched_locally = False
        if self._optimistic and before is not None:
            self._pending.setdefault(task_id, before)
            self._replace_local(before.patched(patch))
            patched_locally = True
            self._notify(None)

        self._inflight.add(task_id)
        try:
            row = await self._store.update(task_id, patch)
            if row is None:
                # Deleted meanwhile, or hidden from this identity: nothing was written.
                raise StoreWriteError("update matched no task")
        except StoreWriteError:
            if patched_locally:
                self._rollback(task_id)
            raise
        finally:
            self._inflight.discard(task_id)

        logger.info("Task updated id=%s fields=%s", task_id, ",".join(sorted(patch)))
        return Task.from_row(row)

    def _rollback(self, task_id: str) -> None:
        confirmed = self._pending.pop(task_id, None)
        if confirmed is None:
            # A confirmed event already replaced the patch.
            return
        if self.get(task_id) is not None:
            self._replace_local(confirmed)
        self._notify(None)

    async def delete(self, task_id: str) -> None:
        self._inflight.add(task_id)
        try:
            await self._store.delete(task_id)
        finally:
            self._inflight.discard(task_id)
        logger.info("Task deleted id=%s", task_id)
