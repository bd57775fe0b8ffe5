# src/duo_tasks/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..cli.panes import describe_event
from ..core.state import AppState
from ..tasks.events import TaskEvent

logger = logging.getLogger(__name__)

PROMPT = ">>> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class _LineReader:
    """
    Reads stdin in a daemon thread, one line per request.

    A daemon thread (rather than asyncio.to_thread) so Ctrl+C can exit while
    input() is still blocked.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._wanted = threading.Event()
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._thread = threading.Thread(target=self._run, name="console-stdin", daemon=True)
        self._thread.start()

    def _deliver(self, line: str | None) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._lines.put_nowait, line)
        except RuntimeError:
            # loop already closed
            return False
        return True

    def _run(self) -> None:
        while True:
            self._wanted.wait()
            self._wanted.clear()
            try:
                line = input(PROMPT)
            except EOFError:
                self._deliver(None)
                return
            if not self._deliver(line):
                return

    async def readline(self) -> str | None:
        """Next line, or None on EOF."""
        self._wanted.set()
        return await self._lines.get()


async def run_console_loop(state: AppState) -> None:
    """
    Interactive two-pane task console.

    Change-feed events keep flowing into the cache while the prompt waits;
    each remote change prints a short notice.
    """
    session = state.session
    me = session.require_identity()
    logger.info("Console started for %s", me.email)

    def on_change(event: TaskEvent | None) -> None:
        # None means a local refresh (load / optimistic patch): nothing to announce.
        if event is None:
            return
        _print_ts(f"[sync] {describe_event(event, me, state.directory)}")

    remove_listener = session.client.add_listener(on_change)
    reader = _LineReader(asyncio.get_running_loop())

    _print_ts("Type /help for commands, /list to show tasks, /exit to quit.\n")
    print(await command_registry.handle(state, "/list"), flush=True)

    try:
        while session.active:
            line = await reader.readline()
            if line is None:
                logger.info("Console EOF received, exiting.")
                break

            user_input = line.strip()
            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            # Plain text is a quick add for yourself.
            if not user_input.startswith("/"):
                user_input = "/add " + user_input

            try:
                reply = await command_registry.handle(state, user_input, emit=_print_ts)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is not None:
                print(reply, flush=True)
    finally:
        remove_listener()
        logger.info("Console connector finished.")
