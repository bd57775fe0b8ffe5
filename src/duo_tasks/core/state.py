# src/duo_tasks/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .session import Session


@dataclass
class AppState:
    # Store Settings on the state for easy access in command handlers.
    settings: Any
    session: Session

    # Task ids in the order of the last rendered listing (row numbers are 1-based).
    last_listing: list[str] = field(default_factory=list)
    # Task id awaiting "/rm <n> yes".
    pending_delete: str | None = None

    @property
    def directory(self):
        return self.session.directory
