# src/duo_tasks/cli/panes.py

"""Two-pane text rendering of the visible task list."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo

from ..tasks.client import TaskStoreClient
from ..tasks.events import Deleted, Inserted, TaskEvent
from ..tasks.policy import Action, permissions_for
from ..tasks.retention import visible
from ..tasks.task_models import Identity, Task
from ..users.directory import UserDirectory

_ACTION_LABELS = {
    Action.TOGGLE_COMPLETE: "done",
    Action.EDIT: "edit",
    Action.REASSIGN: "assign",
    Action.DELETE: "rm",
}


@dataclass(frozen=True, slots=True)
class Pane:
    email: str
    title: str
    tasks: list[Task]

    @property
    def progress(self) -> str:
        total = len(self.tasks)
        if total == 0:
            return "No tasks yet"
        done = sum(1 for t in self.tasks if t.completed)
        return f"{done} of {total} completed"


def creator_email(task: Task, directory: UserDirectory) -> str:
    """Creator's email; rows migrated without created_by_email fall back to ids seen at sign-in."""
    return task.created_by_email or directory.email_for(task.created_by) or ""


def build_panes(
    tasks: list[Task],
    me: Identity,
    directory: UserDirectory,
    now: datetime,
    tz: tzinfo | None = None,
) -> list[Pane]:
    """One pane per authorized user (the signed-in user first) with their visible tasks."""
    shown = visible(tasks, now, tz)
    order = [me.key] + [e for e in directory.emails if e != me.key]
    panes = []
    for email in order:
        if email == me.key:
            title = f"Your tasks ({directory.display_name(email)})"
        else:
            title = f"{directory.display_name(email)}'s tasks"
        mine = [t for t in shown if t.assigned_to.lower() == email]
        panes.append(Pane(email=email, title=title, tasks=mine))
    return panes


def format_task_line(
    number: int,
    task: Task,
    me: Identity,
    directory: UserDirectory,
    *,
    pending: bool = False,
    busy: bool = False,
) -> str:
    box = "[x]" if task.completed else "[ ]"
    line = f"{number:>3}. {box} {task.title}"
    if task.created_by != me.id:
        line += f"  (from {directory.display_name(creator_email(task, directory))})"
    elif task.assigned_to.lower() != me.key:
        line += "  (assigned by you)"
    if task.description:
        line += f"\n       {task.description}"

    perms = permissions_for(me, task)
    actions = [label for action, label in _ACTION_LABELS.items() if perms.allows(action)]
    suffix = f"  [{' '.join(actions)}]" if actions else "  [read-only]"
    if busy:
        suffix += " saving..."
    elif pending:
        suffix += " *"
    first, sep, rest = line.partition("\n")
    return first + suffix + sep + rest


def render_panes(
    client: TaskStoreClient,
    me: Identity,
    directory: UserDirectory,
    now: datetime,
    tz: tzinfo | None = None,
) -> tuple[str, list[str]]:
    """Return the listing text and the task ids in row-number order."""
    lines: list[str] = []
    listing: list[str] = []
    for pane in build_panes(client.tasks, me, directory, now, tz):
        lines.append(f"== {pane.title} - {pane.progress} ==")
        for task in pane.tasks:
            listing.append(task.id)
            lines.append(
                format_task_line(
                    len(listing),
                    task,
                    me,
                    directory,
                    pending=client.is_pending(task.id),
                    busy=client.is_busy(task.id),
                )
            )
        lines.append("")
    return "\n".join(lines).rstrip(), listing


def describe_event(event: TaskEvent, me: Identity, directory: UserDirectory) -> str:
    if isinstance(event, Deleted):
        return "A task was deleted."
    task = event.task
    who = "You" if task.created_by == me.id else directory.display_name(creator_email(task, directory))
    if isinstance(event, Inserted):
        target = "yourself" if task.assigned_to.lower() == me.key else directory.display_name(task.assigned_to)
        if who != "You" and task.assigned_to.lower() == me.key:
            target = "you"
        return f"{who} added \"{task.title}\" for {target}."
    state = "completed" if task.completed else "open"
    return f"Task \"{task.title}\" updated ({state})."
