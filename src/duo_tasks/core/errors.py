# src/duo_tasks/core/errors.py

"""
Error taxonomy shared by the core, the store adapters and the console.

Adapters translate library exceptions (sqlite3, httpx, postgrest) into these
at the port boundary, so callers only ever catch DuoTasksError subclasses.
"""

from __future__ import annotations


class DuoTasksError(Exception):
    """Base class for every error the application reports to a user."""


class NotAuthenticated(DuoTasksError):
    """An operation that needs an identity was invoked without one."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class NotAuthorized(DuoTasksError):
    """The identity may not perform the action (or may not use the app at all)."""


class AuthError(DuoTasksError):
    """The auth provider rejected a sign-in or could not be reached."""


class FetchError(DuoTasksError):
    """Reading from the remote store failed; the cache was left unchanged."""


class StoreWriteError(DuoTasksError):
    """Writing to the remote store failed; the cache was left unchanged."""
