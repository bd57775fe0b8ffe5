# src/duo_tasks/backends/local_auth.py

from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import Callable

from ..core.errors import AuthError
from ..core.ports import AuthListener
from ..tasks.task_models import Identity

logger = logging.getLogger(__name__)

# Fixed namespace so the same email always maps to the same user id across runs.
_USER_NAMESPACE = uuid.UUID("6f1c3a52-6d0e-4d51-9a43-6c2b8f0f7e11")


def local_user_id(email: str) -> str:
    return str(uuid.uuid5(_USER_NAMESPACE, email.strip().lower()))


class LocalAuthProvider:
    """
    Password-less auth for the local backend.

    Any syntactically valid email can sign in; the authorized-set check is the
    session's job, not the provider's.
    """

    def __init__(self) -> None:
        self._identity: Identity | None = None
        self._listeners: list[AuthListener] = []

    async def sign_in(self, email: str, password: str | None = None) -> Identity:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise AuthError(f"Invalid email: {email!r}")
        self._identity = Identity(id=local_user_id(email), email=email)
        logger.info("Signed in locally as %s", email)
        self._emit()
        return self._identity

    async def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("Signed out %s", self._identity.email)
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
