# src/duo_tasks/tasks/policy.py

"""
Permission policy: who may do what with a task.

Rules:
- the creator (by identity id) may edit, delete and reassign,
- the assignee (by email) may toggle completion,
- both authorized identities may view every task,
- nothing else grants anything.

These checks gate the console before a write is made. They are a UX
convenience, not a security boundary; the store must enforce the same rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..core.errors import NotAuthorized
from .task_models import Identity, Task


class Action(StrEnum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    TOGGLE_COMPLETE = "toggle_complete"
    REASSIGN = "reassign"


@dataclass(frozen=True, slots=True)
class Permissions:
    can_view: bool
    can_edit: bool
    can_delete: bool
    can_toggle_complete: bool
    can_reassign: bool

    def allows(self, action: Action) -> bool:
        return {
            Action.VIEW: self.can_view,
            Action.EDIT: self.can_edit,
            Action.DELETE: self.can_delete,
            Action.TOGGLE_COMPLETE: self.can_toggle_complete,
            Action.REASSIGN: self.can_reassign,
        }[action]

    def allowed_actions(self) -> list[Action]:
        return [a for a in Action if self.allows(a)]


_DENIAL_MESSAGES = {
    Action.VIEW: "You are not allowed to view this task.",
    Action.EDIT: "Only the task's creator can edit it.",
    Action.DELETE: "Only the task's creator can delete it.",
    Action.TOGGLE_COMPLETE: "You can only mark tasks complete if they're assigned to you.",
    Action.REASSIGN: "Only the task's creator can reassign it.",
}


def _same_email(a: str, b: str) -> bool:
    return bool(a) and a.strip().lower() == (b or "").strip().lower()


def permissions_for(identity: Identity, task: Task) -> Permissions:
    is_creator = bool(identity.id) and identity.id == task.created_by
    is_assignee = _same_email(identity.email, task.assigned_to)
    return Permissions(
        can_view=True,
        can_edit=is_creator,
        can_delete=is_creator,
        can_toggle_complete=is_assignee,
        can_reassign=is_creator,
    )


def require(identity: Identity, task: Task, action: Action) -> None:
    """Raise NotAuthorized unless identity may perform action on task."""
    if not permissions_for(identity, task).allows(action):
        raise NotAuthorized(_DENIAL_MESSAGES[action])


def actions_for_patch(fields: dict[str, object]) -> set[Action]:
    """Map an update patch to the actions it needs (title+completed -> EDIT+TOGGLE)."""
    needed: set[Action] = set()
    if "title" in fields or "description" in fields:
        needed.add(Action.EDIT)
    if "assigned_to" in fields:
        needed.add(Action.REASSIGN)
    if "completed" in fields:
        needed.add(Action.TOGGLE_COMPLETE)
    return needed


def require_patch(identity: Identity, task: Task, fields: dict[str, object]) -> None:
    for action in sorted(actions_for_patch(fields)):
        require(identity, task, action)
