# src/duo_tasks/backends/local_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.errors import FetchError, StoreWriteError
from ..core.ports import TaskRow
from ..tasks.events import TaskEvent, event_from_change
from ..tasks.task_models import parse_ts, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "title",
    "description",
    "completed",
    "completed_at",
    "created_by",
    "created_by_email",
    "assigned_to",
    "created_at",
    "updated_at",
)

# Change-log rows older than this are dropped on open; feeds only read forward from "now".
_CHANGE_LOG_KEEP_SECONDS = 24 * 3600


def _utc_iso(raw: Any) -> str | None:
    dt = parse_ts(raw)
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat()


class LocalTaskStore:
    """
    SQLite implementation of RemoteTaskStore for development and tests.

    Every mutation also appends to a task_changes log inside the same
    transaction. Change feeds read that log in commit order, so two processes
    sharing one database file see each other's writes (polling), and feeds in
    this process are woken immediately after a local write.

    The schema is migration-safe in the same way as the other stores:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each call opens its own SQLite connection; blocking work runs in a worker thread
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, poll_interval: float = 1.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._poll_interval = max(0.01, float(poll_interval))
        self._feeds: set[LocalChangeFeed] = set()
        self._ensure_schema()
        try:
            total = self._count_sync()
        except Exception:
            total = -1
        logger.info("LocalTaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    created_by TEXT NOT NULL,
                    created_by_email TEXT NOT NULL DEFAULT '',
                    assigned_to TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_changes (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    change_type TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    row TEXT,
                    logged_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("LocalTaskStore migration: added column %s", name)

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("completed_at", "TEXT")
            add_col("created_by_email", "TEXT NOT NULL DEFAULT ''")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_completed ON tasks(completed, completed_at)")

            cur.execute(
                "DELETE FROM task_changes WHERE logged_at < ?",
                (time.time() - _CHANGE_LOG_KEEP_SECONDS,),
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> TaskRow:
        out = {k: row[k] for k in _COLUMNS}
        out["completed"] = bool(out["completed"])
        out["description"] = out["description"] or ""
        return out

    @staticmethod
    def _log_change(cur: sqlite3.Cursor, change_type: str, task_id: str, row: TaskRow | None) -> None:
        cur.execute(
            "INSERT INTO task_changes(change_type, task_id, row, logged_at) VALUES (?, ?, ?, ?)",
            (change_type, task_id, json.dumps(row, ensure_ascii=False) if row else None, time.time()),
        )

    def _select_one(self, cur: sqlite3.Cursor, task_id: str) -> TaskRow | None:
        cur.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        row = cur.fetchone()
        return self._row_to_dict(row) if row else None

    # ---- blocking operations (run in a worker thread) ----

    def _count_sync(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def _fetch_all_sync(self) -> list[TaskRow]:
        conn = self._get_conn()
        try:
            cur = conn.execute("SELECT * FROM tasks ORDER BY created_at DESC")
            return [self._row_to_dict(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _insert_sync(self, row: TaskRow) -> TaskRow:
        now = utc_now().isoformat()
        values = {
            "id": str(row["id"]),
            "title": str(row["title"]),
            "description": str(row.get("description") or ""),
            "completed": 1 if row.get("completed") else 0,
            "completed_at": _utc_iso(row.get("completed_at")) if row.get("completed") else None,
            "created_by": str(row["created_by"]),
            "created_by_email": str(row.get("created_by_email") or ""),
            "assigned_to": str(row["assigned_to"]),
            "created_at": _utc_iso(row.get("created_at")) or now,
            "updated_at": now,
        }
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"INSERT INTO tasks({', '.join(_COLUMNS)}) VALUES ({', '.join('?' for _ in _COLUMNS)})",
                tuple(values[c] for c in _COLUMNS),
            )
            stored = self._select_one(cur, values["id"])
            self._log_change(cur, "INSERT", values["id"], stored)
            conn.commit()
            logger.debug("Task inserted id=%s", values["id"])
            return stored or values
        finally:
            conn.close()

    def _update_sync(self, task_id: str, patch: TaskRow) -> TaskRow | None:
        fields: list[str] = []
        params: list[Any] = []

        for key in ("title", "description", "assigned_to"):
            if key in patch:
                fields.append(f"{key} = ?")
                params.append(str(patch[key] or ""))
        if "completed" in patch:
            fields.append("completed = ?")
            params.append(1 if patch["completed"] else 0)
            if not patch["completed"]:
                fields.append("completed_at = NULL")
        if "completed_at" in patch and patch.get("completed", True):
            fields.append("completed_at = ?")
            params.append(_utc_iso(patch["completed_at"]))

        if not fields:
            return None

        fields.append("updated_at = ?")
        params.append(utc_now().isoformat())
        params.append(task_id)

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            if cur.rowcount != 1:
                conn.commit()
                return None
            stored = self._select_one(cur, task_id)
            self._log_change(cur, "UPDATE", task_id, stored)
            conn.commit()
            return stored
        finally:
            conn.close()

    def _delete_sync(self, task_id: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            deleted = cur.rowcount
            if deleted:
                self._log_change(cur, "DELETE", task_id, {"id": task_id})
            conn.commit()
            return deleted
        finally:
            conn.close()

    def _delete_completed_before_sync(self, cutoff_iso: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT id FROM tasks WHERE completed = 1 AND completed_at IS NOT NULL AND completed_at < ?",
                (cutoff_iso,),
            )
            ids = [r["id"] for r in cur.fetchall()]
            for task_id in ids:
                cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
                self._log_change(cur, "DELETE", task_id, {"id": task_id})
            conn.commit()
            return len(ids)
        finally:
            conn.close()

    def _last_seq_sync(self) -> int:
        conn = self._get_conn()
        try:
            (seq,) = conn.execute("SELECT COALESCE(MAX(seq), 0) FROM task_changes").fetchone()
            return int(seq)
        finally:
            conn.close()

    def _changes_after_sync(self, seq: int, limit: int = 100) -> list[sqlite3.Row]:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "SELECT seq, change_type, task_id, row FROM task_changes WHERE seq > ? ORDER BY seq ASC LIMIT ?",
                (int(seq), int(limit)),
            )
            return cur.fetchall()
        finally:
            conn.close()

    # ---- RemoteTaskStore ----

    async def fetch_all(self) -> list[TaskRow]:
        try:
            return await asyncio.to_thread(self._fetch_all_sync)
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to fetch tasks: {exc}") from exc

    async def insert(self, row: TaskRow) -> TaskRow:
        try:
            stored = await asyncio.to_thread(self._insert_sync, row)
        except (sqlite3.Error, KeyError) as exc:
            raise StoreWriteError(f"Failed to add task: {exc}") from exc
        self._wake_feeds()
        return stored

    async def update(self, task_id: str, patch: TaskRow) -> TaskRow | None:
        try:
            stored = await asyncio.to_thread(self._update_sync, task_id, patch)
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to update task: {exc}") from exc
        if stored is None:
            logger.warning("Update matched no task id=%s", task_id)
        self._wake_feeds()
        return stored

    async def delete(self, task_id: str) -> None:
        try:
            deleted = await asyncio.to_thread(self._delete_sync, task_id)
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to delete task: {exc}") from exc
        if not deleted:
            logger.debug("Delete matched no task id=%s", task_id)
        self._wake_feeds()

    async def delete_completed_before(self, cutoff: datetime) -> int:
        cutoff_iso = _utc_iso(cutoff) or utc_now().isoformat()
        try:
            deleted = await asyncio.to_thread(self._delete_completed_before_sync, cutoff_iso)
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to purge completed tasks: {exc}") from exc
        self._wake_feeds()
        return deleted

    async def subscribe(self) -> LocalChangeFeed:
        try:
            seq = await asyncio.to_thread(self._last_seq_sync)
        except sqlite3.Error as exc:
            raise FetchError(f"Failed to open change feed: {exc}") from exc
        feed = LocalChangeFeed(self, after_seq=seq, poll_interval=self._poll_interval)
        self._feeds.add(feed)
        return feed

    async def close(self) -> None:
        for feed in list(self._feeds):
            await feed.close()

    def _wake_feeds(self) -> None:
        for feed in list(self._feeds):
            feed.wake()

    def _forget(self, feed: LocalChangeFeed) -> None:
        self._feeds.discard(feed)


class LocalChangeFeed:
    """
    Change-log reader: yields events with seq > the log head at subscribe time.

    Polls every poll_interval seconds; a write through the same LocalTaskStore
    wakes it at once.
    """

    def __init__(self, store: LocalTaskStore, *, after_seq: int, poll_interval: float) -> None:
        self._store = store
        self._seq = int(after_seq)
        self._poll_interval = poll_interval
        self._wakeup = asyncio.Event()
        self._closed = False

    def wake(self) -> None:
        self._wakeup.set()

    async def close(self) -> None:
        self._closed = True
        self._wakeup.set()
        self._store._forget(self)

    async def __aiter__(self) -> AsyncIterator[TaskEvent]:
        while not self._closed:
            self._wakeup.clear()
            try:
                rows = await asyncio.to_thread(self._store._changes_after_sync, self._seq)
            except sqlite3.Error:
                logger.exception("Change log read failed after seq=%s", self._seq)
                rows = []

            for r in rows:
                self._seq = int(r["seq"])
                row = json.loads(r["row"]) if r["row"] else {"id": r["task_id"]}
                event = event_from_change(r["change_type"], row, row)
                if event is not None:
                    yield event
                if self._closed:
                    return

            if rows:
                continue
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._poll_interval)
