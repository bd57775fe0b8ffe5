# tests/fakes.py

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime

from duo_tasks.core.errors import FetchError, StoreWriteError
from duo_tasks.tasks.events import Deleted, Inserted, TaskEvent, Updated
from duo_tasks.tasks.task_models import Task, parse_ts, utc_now


class FakeChangeFeed:
    """Queue-backed feed; the fake store pushes events into it."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[TaskEvent | None] = asyncio.Queue()
        self.closed = False

    def push(self, event: TaskEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self):
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class FakeTaskStore:
    """
    In-memory RemoteTaskStore used for client / session unit tests.

    - fail_reads / fail_writes simulate transport failures
    - publish=False holds back change events (to observe optimistic state)
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}
        self.feeds: list[FakeChangeFeed] = []
        self.fail_reads = False
        self.fail_writes = False
        self.fail_purge = False
        self.publish = True
        self.calls: list[str] = []

    def _emit(self, event: TaskEvent) -> None:
        if not self.publish:
            return
        for feed in self.feeds:
            feed.push(event)

    def seed(self, row: dict) -> None:
        self.rows[row["id"]] = dict(row)

    async def fetch_all(self) -> list[dict]:
        self.calls.append("fetch_all")
        if self.fail_reads:
            raise FetchError("network down")
        return sorted(
            (dict(r) for r in self.rows.values()),
            key=lambda r: parse_ts(r["created_at"]),
            reverse=True,
        )

    async def insert(self, row: dict) -> dict:
        self.calls.append("insert")
        if self.fail_writes:
            raise StoreWriteError("insert rejected")
        stored = {**row, "updated_at": utc_now().isoformat()}
        self.rows[stored["id"]] = stored
        self._emit(Inserted(Task.from_row(stored)))
        return dict(stored)

    async def update(self, task_id: str, patch: dict) -> dict | None:
        self.calls.append("update")
        if self.fail_writes:
            raise StoreWriteError("update rejected")
        if task_id not in self.rows:
            return None
        stored = {**self.rows[task_id], **patch, "updated_at": utc_now().isoformat()}
        self.rows[task_id] = stored
        self._emit(Updated(Task.from_row(stored)))
        return dict(stored)

    async def delete(self, task_id: str) -> None:
        self.calls.append("delete")
        if self.fail_writes:
            raise StoreWriteError("delete rejected")
        if self.rows.pop(task_id, None) is not None:
            self._emit(Deleted(task_id))

    async def delete_completed_before(self, cutoff: datetime) -> int:
        self.calls.append("delete_completed_before")
        if self.fail_purge:
            raise StoreWriteError("purge rejected")
        doomed = [
            task_id
            for task_id, r in self.rows.items()
            if r.get("completed") and r.get("completed_at") and parse_ts(r["completed_at"]) < cutoff
        ]
        for task_id in doomed:
            del self.rows[task_id]
            self._emit(Deleted(task_id))
        return len(doomed)

    async def subscribe(self) -> FakeChangeFeed:
        self.calls.append("subscribe")
        feed = FakeChangeFeed()
        self.feeds.append(feed)
        return feed

    async def close(self) -> None:
        for feed in self.feeds:
            await feed.close()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Let the event loop run until predicate() holds (feed consumers are tasks)."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)
