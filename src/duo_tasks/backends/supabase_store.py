# src/duo_tasks/backends/supabase_store.py

"""
Supabase backend: tasks table over PostgREST, change feed over Realtime,
identity over Supabase Auth. One AsyncClient is shared by the store and the
auth provider so table access runs with the signed-in user's session.

Expected table (name configurable, default "tasks"):
    id uuid primary key, title text, description text, completed bool,
    completed_at timestamptz, created_by uuid, created_by_email text,
    assigned_to text, created_at timestamptz, updated_at timestamptz
with realtime enabled for the table. Row-level security should mirror
tasks.policy; the client-side checks are not a security boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from ..core.errors import AuthError, FetchError, StoreWriteError
from ..core.ports import AuthListener, TaskRow
from ..tasks.events import TaskEvent, event_from_change
from ..tasks.task_models import Identity, utc_now

logger = logging.getLogger(__name__)

_STORE_ERRORS = (APIError, httpx.HTTPError)


def _error_text(exc: Exception) -> str:
    if isinstance(exc, APIError):
        return str(exc.message or exc)
    return str(exc) or exc.__class__.__name__


async def connect(url: str, key: str, *, table: str = "tasks") -> tuple[SupabaseTaskStore, SupabaseAuthProvider]:
    if not url or not key:
        raise ValueError("DUO_SUPABASE_URL and DUO_SUPABASE_KEY are required for the supabase backend")
    client = await acreate_client(url, key)
    logger.info("Supabase client ready url=%s table=%s", url, table)
    return SupabaseTaskStore(client, table=table), SupabaseAuthProvider(client)


class SupabaseTaskStore:
    """RemoteTaskStore backed by a Supabase table."""

    def __init__(self, client: AsyncClient, *, table: str = "tasks") -> None:
        self._client = client
        self._table = table
        self._feeds: set[SupabaseChangeFeed] = set()

    async def fetch_all(self) -> list[TaskRow]:
        try:
            response = await (
                self._client.table(self._table)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except _STORE_ERRORS as exc:
            raise FetchError(f"Failed to fetch tasks: {_error_text(exc)}") from exc
        return list(response.data or [])

    async def insert(self, row: TaskRow) -> TaskRow:
        try:
            response = await self._client.table(self._table).insert(row).execute()
        except _STORE_ERRORS as exc:
            raise StoreWriteError(f"Failed to add task: {_error_text(exc)}") from exc
        data = response.data or []
        return data[0] if data else row

    async def update(self, task_id: str, patch: TaskRow) -> TaskRow | None:
        payload = {**patch, "updated_at": utc_now().isoformat()}
        try:
            response = await (
                self._client.table(self._table)
                .update(payload)
                .eq("id", task_id)
                .execute()
            )
        except _STORE_ERRORS as exc:
            raise StoreWriteError(f"Failed to update task: {_error_text(exc)}") from exc
        data = response.data or []
        if not data:
            # RLS hides rows the session may not touch; PostgREST reports that as zero rows.
            logger.warning("Update matched no visible task id=%s", task_id)
            return None
        return data[0]

    async def delete(self, task_id: str) -> None:
        try:
            await self._client.table(self._table).delete().eq("id", task_id).execute()
        except _STORE_ERRORS as exc:
            raise StoreWriteError(f"Failed to delete task: {_error_text(exc)}") from exc

    async def delete_completed_before(self, cutoff: datetime) -> int:
        cutoff_iso = cutoff.astimezone(timezone.utc).isoformat()
        try:
            response = await (
                self._client.table(self._table)
                .delete()
                .eq("completed", True)
                .lt("completed_at", cutoff_iso)
                .execute()
            )
        except _STORE_ERRORS as exc:
            raise StoreWriteError(f"Failed to purge completed tasks: {_error_text(exc)}") from exc
        return len(response.data or [])

    async def subscribe(self) -> SupabaseChangeFeed:
        feed = SupabaseChangeFeed(self._client, self._table, on_close=self._feeds.discard)
        try:
            await feed.open()
        except Exception as exc:
            raise FetchError(f"Failed to subscribe to task changes: {exc}") from exc
        self._feeds.add(feed)
        return feed

    async def close(self) -> None:
        for feed in list(self._feeds):
            await feed.close()


class SupabaseChangeFeed:
    """Realtime postgres_changes channel exposed as an async event stream."""

    def __init__(
        self,
        client: AsyncClient,
        table: str,
        *,
        on_close: Callable[[SupabaseChangeFeed], None] | None = None,
    ) -> None:
        self._client = client
        self._table = table
        self._on_close = on_close
        self._queue: asyncio.Queue[TaskEvent | None] = asyncio.Queue()
        self._channel: Any = None
        self._closed = False

    def _on_change(self, payload: dict[str, Any]) -> None:
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        change_type = data.get("type") or data.get("eventType")
        new_row = data.get("record") or data.get("new")
        old_row = data.get("old_record") or data.get("old")
        event = event_from_change(change_type, new_row, old_row)
        if event is not None:
            self._queue.put_nowait(event)

    async def open(self) -> None:
        channel = self._client.channel(f"{self._table}-changes")
        channel.on_postgres_changes("*", schema="public", table=self._table, callback=self._on_change)
        await channel.subscribe()
        self._channel = channel
        logger.debug("Realtime channel subscribed table=%s", self._table)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        channel, self._channel = self._channel, None
        if channel is not None:
            try:
                await self._client.remove_channel(channel)
            except Exception:
                logger.debug("remove_channel failed", exc_info=True)
        if self._on_close is not None:
            self._on_close(self)

    async def __aiter__(self) -> AsyncIterator[TaskEvent]:
        while not self._closed:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class SupabaseAuthProvider:
    """AuthProvider over Supabase Auth (email + password)."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client
        self._identity: Identity | None = None
        self._listeners: list[AuthListener] = []
        self._client.auth.on_auth_state_change(self._on_auth_event)

    @staticmethod
    def _identity_from_user(user: Any) -> Identity | None:
        if user is None or not getattr(user, "email", None):
            return None
        return Identity(id=str(user.id), email=str(user.email).strip().lower())

    def _on_auth_event(self, event: Any, session: Any) -> None:
        identity = self._identity_from_user(getattr(session, "user", None))
        if identity != self._identity:
            logger.info("Auth state changed event=%s user=%s", event, identity.email if identity else None)
            self._identity = identity
            self._emit()

    async def sign_in(self, email: str, password: str | None = None) -> Identity:
        if not password:
            raise AuthError("A password is required to sign in with Supabase")
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email.strip(), "password": password}
            )
        except Exception as exc:
            raise AuthError(f"Sign-in failed: {exc}") from exc

        identity = self._identity_from_user(getattr(response, "user", None))
        if identity is None:
            raise AuthError("Sign-in returned no user")
        if identity != self._identity:
            self._identity = identity
            self._emit()
        return identity

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except Exception:
            logger.warning("Supabase sign-out failed; dropping local session anyway", exc_info=True)
        if self._identity is not None:
            self._identity = None
            self._emit()

    def current_identity(self) -> Identity | None:
        return self._identity

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception:
                logger.exception("Auth listener failed")
