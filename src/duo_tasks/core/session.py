# src/duo_tasks/core/session.py

"""
Session lifecycle: sign in -> authorize -> start the task client -> purge once.

The session owns the TaskStoreClient for the signed-in identity and tears it
down on sign-out (explicit, or reported by the auth provider), so no feed
callbacks outlive the view that consumes them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from ..tasks.client import TaskStoreClient
from ..tasks.retention import RETENTION_DAYS, purge_old_completed
from ..tasks.task_models import Identity, utc_now
from ..users.directory import UserDirectory
from .errors import NotAuthenticated
from .ports import AuthProvider, RemoteTaskStore

logger = logging.getLogger(__name__)


class Session:
    def __init__(
        self,
        auth: AuthProvider,
        store: RemoteTaskStore,
        directory: UserDirectory,
        *,
        optimistic_updates: bool = True,
        retention_days: int = RETENTION_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.auth = auth
        self.store = store
        self.directory = directory
        self._optimistic = optimistic_updates
        self._retention_days = retention_days
        self._clock = clock

        self._client: TaskStoreClient | None = None
        self._client_identity: Identity | None = None  # owner of the running client
        self._purge_task: asyncio.Task[int] | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self._unsubscribe_auth = auth.on_change(self._on_auth_change)

    @property
    def identity(self) -> Identity | None:
        return self.auth.current_identity()

    @property
    def client(self) -> TaskStoreClient:
        if self._client is None:
            raise NotAuthenticated("Sign in first")
        return self._client

    @property
    def active(self) -> bool:
        return self._client is not None

    def require_identity(self) -> Identity:
        identity = self.identity
        if identity is None:
            raise NotAuthenticated()
        return identity

    async def sign_in(self, email: str, password: str | None = None) -> Identity:
        """
        Authenticate, then check the authorized set and start syncing.

        An identity outside the set stays authenticated but gets NotAuthorized
        and no task client; the caller decides whether to sign it out.
        """
        identity = await self.auth.sign_in(email, password)
        if self._client is not None and self._client_identity != identity:
            await self._stop()
        self.directory.remember(identity)
        self.directory.require_authorized(identity)
        await self._start()
        return identity

    async def sign_out(self) -> None:
        await self._stop()
        await self.auth.sign_out()

    async def close(self) -> None:
        await self._stop()
        self._unsubscribe_auth()
        try:
            await self.store.close()
        except Exception:
            logger.debug("Store close failed", exc_info=True)

    async def _start(self) -> None:
        if self._client is not None:
            return
        client = TaskStoreClient(
            self.store,
            self.auth.current_identity,
            optimistic_updates=self._optimistic,
            clock=self._clock,
        )
        try:
            await client.start()
        except Exception:
            await client.teardown()
            raise
        self._client = client
        self._client_identity = self.identity
        self._purge_task = asyncio.create_task(self._purge_once(), name="duo-tasks-purge")

    async def _purge_once(self) -> int:
        return await purge_old_completed(self.store, self._clock(), retention_days=self._retention_days)

    async def wait_for_purge(self) -> int:
        if self._purge_task is None:
            return 0
        return await self._purge_task

    async def _stop(self, only: TaskStoreClient | None = None) -> None:
        if only is not None and self._client is not only:
            # Already stopped, or replaced by a newer sign-in.
            return
        purge, self._purge_task = self._purge_task, None
        if purge is not None and not purge.done():
            purge.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await purge

        client, self._client = self._client, None
        self._client_identity = None
        if client is not None:
            await client.teardown()
            logger.info("Session stopped")

    def _on_auth_change(self, identity: Identity | None) -> None:
        if identity is not None:
            self.directory.remember(identity)
        client = self._client
        if client is None or (identity is not None and identity == self._client_identity):
            return
        # Signed out or switched user elsewhere (token expiry, other tab): drop the cache and feed.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Auth changed outside an event loop; session left running")
            return
        self._stop_task = loop.create_task(self._stop(only=client), name="duo-tasks-stop")
        self._stop_task.add_done_callback(self._on_stop_done)

    def _on_stop_done(self, task: asyncio.Task[None]) -> None:
        if task is self._stop_task:
            self._stop_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Session stop after auth change failed", exc_info=task.exception())

    async def wait_for_stop(self) -> None:
        if self._stop_task is not None:
            await self._stop_task
