# src/duo_tasks/cli/commands.py

from __future__ import annotations

import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..core.errors import DuoTasksError
from ..core.state import AppState
from ..tasks.policy import Action, require, require_patch
from ..tasks.retention import visible
from ..tasks.task_models import Task
from .panes import render_panes

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], "CommandEmitter | None"], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console (/help, /add, /done, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Application errors (policy denials, store failures, bad input) become the
        reply; they are not retried.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args, emit)
        except DuoTasksError as e:
            logger.info("/%s failed: %s", name, e)
            return f"Error: {e}"
        except ValueError as e:
            return f"Invalid input: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  /exit - Quit.")
        return "\n".join(lines)


registry = CommandRegistry()


def _now() -> datetime:
    return datetime.now().astimezone()


def _split_text(args: list[str], *, with_assignee: bool = True) -> tuple[str, str, str | None]:
    """
    Split "<title> [-- <description>] [@who]" into its parts.

    A trailing @token names the assignee unless with_assignee is False,
    in which case it stays part of the text.
    """
    words = list(args)
    assignee = None
    if with_assignee and words and words[-1].startswith("@") and len(words[-1]) > 1:
        assignee = words.pop()[1:]
    if "--" in words:
        i = words.index("--")
        return " ".join(words[:i]), " ".join(words[i + 1 :]), assignee
    return " ".join(words), "", assignee


def _resolve_row(state: AppState, token: str) -> Task:
    client = state.session.client
    task_id: str | None = None
    if token.isdigit():
        n = int(token)
        if not 1 <= n <= len(state.last_listing):
            raise ValueError(f"no row {n} in the last listing; use /list")
        task_id = state.last_listing[n - 1]
    else:
        matches = [t.id for t in client.tasks if t.id.startswith(token)]
        if len(matches) > 1:
            raise ValueError(f"task id prefix {token!r} is ambiguous")
        task_id = matches[0] if matches else None

    task = client.get(task_id) if task_id else None
    if task is None:
        raise ValueError(f"task {token} no longer exists; use /list")
    return task


def _ensure_idle(state: AppState, task: Task) -> None:
    if state.session.client.is_busy(task.id):
        raise ValueError("that task is still saving; try again in a moment")


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_whoami(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    me = state.session.require_identity()
    directory = state.directory
    partner = directory.partner_of(me.email)
    return (
        f"Signed in as {directory.display_name(me.email)} <{me.email}> (id {me.id}).\n"
        f"Partner: {directory.display_name(partner)} <{partner}>."
    )


async def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    me = state.session.require_identity()
    text, listing = render_panes(state.session.client, me, state.directory, _now())
    state.last_listing = listing
    state.pending_delete = None
    return text


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <title> [-- <description>] [@me|@partner|@name]
    """
    me = state.session.require_identity()
    title, description, who = _split_text(args)
    if not title.strip():
        return "Usage: /add <title> [-- <description>] [@me|@partner]"
    assignee = state.directory.resolve(who or "me", me)
    task = await state.session.client.create(title, description, assigned_to=assignee)
    if assignee == me.key:
        return f"Task added: {task.title}"
    return f"Task assigned to {state.directory.display_name(assignee)}: {task.title}"


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /edit <n> <title> [-- <description>]
    """
    if len(args) < 2:
        return "Usage: /edit <n> <title> [-- <description>]"
    me = state.session.require_identity()
    task = _resolve_row(state, args[0])
    title, description, _ = _split_text(args[1:], with_assignee=False)
    fields: dict[str, str] = {"title": title}
    if "--" in args[1:]:
        fields["description"] = description
    require_patch(me, task, fields)
    _ensure_idle(state, task)
    await state.session.client.update(task.id, **fields)
    return "Task updated."


async def cmd_desc(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /desc <n> [text]  (no text clears the description)
    """
    if not args:
        return "Usage: /desc <n> [text]"
    me = state.session.require_identity()
    task = _resolve_row(state, args[0])
    fields = {"description": " ".join(args[1:])}
    require_patch(me, task, fields)
    _ensure_idle(state, task)
    await state.session.client.update(task.id, **fields)
    return "Description updated." if len(args) > 1 else "Description cleared."


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /done <n>  toggles completion (assignee only)
    """
    if not args:
        return "Usage: /done <n>"
    me = state.session.require_identity()
    task = _resolve_row(state, args[0])
    fields = {"completed": not task.completed}
    require_patch(me, task, fields)
    _ensure_idle(state, task)
    await state.session.client.update(task.id, **fields)
    return "Task marked as incomplete." if task.completed else "Task marked as completed."


async def cmd_assign(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /assign <n> <me|partner|name>
    """
    if len(args) < 2:
        return "Usage: /assign <n> <me|partner|name>"
    me = state.session.require_identity()
    task = _resolve_row(state, args[0])
    require_patch(me, task, {"assigned_to": args[1]})
    _ensure_idle(state, task)
    assignee = state.directory.resolve(args[1], me)
    if assignee == task.assigned_to.lower():
        return f"Task is already assigned to {state.directory.display_name(assignee)}."
    await state.session.client.update(task.id, assigned_to=assignee)
    return f"Task will be reassigned to {state.directory.display_name(assignee)}."


async def cmd_rm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /rm <n>      -> ask for confirmation
    /rm <n> yes  -> delete (creator only)
    """
    if not args:
        return "Usage: /rm <n> [yes]"
    me = state.session.require_identity()
    task = _resolve_row(state, args[0])
    require(me, task, Action.DELETE)
    _ensure_idle(state, task)

    confirmed = len(args) > 1 and args[1].lower() in ("yes", "y")
    if not confirmed or state.pending_delete != task.id:
        state.pending_delete = task.id
        return f"Delete \"{task.title}\"? This cannot be undone. Type /rm {args[0]} yes to confirm."

    state.pending_delete = None
    if emit:
        with contextlib.suppress(Exception):
            emit(f"Deleting \"{task.title}\"...")
    await state.session.client.delete(task.id)
    return "Task deleted."


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    session = state.session
    me = session.identity
    if me is None or not session.active:
        return "Status:\n  Signed out."
    client = session.client
    tasks = client.tasks
    shown = visible(tasks, _now())
    pending = sum(1 for t in tasks if client.is_pending(t.id))
    return (
        "Status:\n"
        f"  Backend: {getattr(state.settings, 'backend', '?')}\n"
        f"  User: {me.email}\n"
        f"  Live updates: {'ON' if client.subscribed else 'OFF'}\n"
        f"  Tasks: {len(tasks)} cached, {len(shown)} visible, {pending} unconfirmed"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user and partner.")
registry.register("list", cmd_list, help_text="Show both task panes.", aliases=["ls", "l"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [-- <description>] [@partner].")
registry.register("edit", cmd_edit, help_text="Edit a task you created: /edit <n> <title> [-- <description>].")
registry.register("desc", cmd_desc, help_text="Set a task's description: /desc <n> [text].")
registry.register("done", cmd_done, help_text="Toggle completion of a task assigned to you: /done <n>.")
registry.register("assign", cmd_assign, help_text="Reassign a task you created: /assign <n> <me|partner>.")
registry.register("rm", cmd_rm, help_text="Delete a task you created: /rm <n>, then /rm <n> yes.", aliases=["del"])
registry.register("status", cmd_status, help_text="Show sync status.")
