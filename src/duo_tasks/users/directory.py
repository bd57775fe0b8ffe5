# src/duo_tasks/users/directory.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from ..core.errors import NotAuthorized
from ..tasks.task_models import Identity

logger = logging.getLogger(__name__)


def _norm(email: str | None) -> str:
    return (email or "").strip().lower()


def parse_authorized_users(raw: Iterable[str]) -> dict[str, str]:
    """
    Parse "email=Display Name" entries (a bare email uses its local part as the name).

    Order is preserved: it decides pane order in the console.
    """
    out: dict[str, str] = {}
    for item in raw:
        item = (item or "").strip()
        if not item:
            continue
        email, _, name = item.partition("=")
        email = _norm(email)
        if not email:
            continue
        out[email] = name.strip() or email.split("@", 1)[0]
    return out


class UserDirectory:
    """
    The fixed pair of identities allowed to use the app.

    Maps authorized email -> display name. As identities sign in, their user
    ids are remembered so tasks can be labelled by creator id as well.
    """

    def __init__(self, users: Mapping[str, str]) -> None:
        names = {_norm(email): (name or "").strip() for email, name in users.items()}
        names.pop("", None)
        if len(names) != 2:
            raise ValueError(f"exactly two authorized users are required, got {len(names)}")
        self._names = names
        self._ids_by_email: dict[str, str] = {}

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> UserDirectory:
        return cls(parse_authorized_users(entries))

    @property
    def emails(self) -> list[str]:
        return list(self._names)

    def is_authorized(self, email: str | None) -> bool:
        return _norm(email) in self._names

    def require_authorized(self, identity: Identity) -> None:
        if not self.is_authorized(identity.email):
            logger.warning("Access denied for %s (not in the authorized set)", identity.email)
            raise NotAuthorized(f"This workspace is invite-only; {identity.email} is not on the list.")

    def display_name(self, email: str | None) -> str:
        key = _norm(email)
        name = self._names.get(key)
        if name:
            return name
        return key.split("@", 1)[0] if key else "unknown"

    def partner_of(self, email: str | None) -> str:
        key = _norm(email)
        if key not in self._names:
            raise NotAuthorized(f"{email} is not an authorized user")
        return next(e for e in self._names if e != key)

    def resolve(self, who: str, me: Identity) -> str:
        """Turn "me" / "partner" / a name / an email into an authorized email."""
        token = _norm(who).lstrip("@")
        if token in ("", "me", "self", "myself"):
            return me.key
        if token in ("partner", "them", "other"):
            return self.partner_of(me.email)
        if token in self._names:
            return token
        for email, name in self._names.items():
            if name.lower() == token or email.split("@", 1)[0] == token:
                return email
        raise ValueError(f"unknown user: {who}")

    # ---- id <-> email pairs learned at sign-in ----

    def remember(self, identity: Identity) -> None:
        self._ids_by_email[identity.key] = identity.id

    def email_for(self, user_id: str | None) -> str | None:
        if not user_id:
            return None
        for email, uid in self._ids_by_email.items():
            if uid == user_id:
                return email
        return None
