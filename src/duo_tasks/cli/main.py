# src/duo_tasks/cli/main.py

"""
CLI entrypoint.

Initializes logging, asks for credentials, builds AppState, signs the user in,
then runs the console until /exit, EOF or Ctrl+C. The session is always torn
down on the way out so the change feed is closed.
"""

from __future__ import annotations

import asyncio
import getpass
import logging
import sys

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.errors import AuthError, DuoTasksError, NotAuthorized
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _ask_credentials(settings) -> tuple[str, str | None]:
    email = settings.user_email or input("Email: ").strip()
    password = settings.user_password
    if settings.backend == "supabase" and not password:
        password = getpass.getpass("Password: ")
    return email, password


async def _sign_in(state: AppState, email: str, password: str | None) -> bool:
    try:
        identity = await state.session.sign_in(email, password)
    except NotAuthorized as e:
        print(f"Access restricted. {e}", file=sys.stderr)
        await state.session.sign_out()
        return False
    except AuthError as e:
        print(f"Sign-in failed: {e}", file=sys.stderr)
        return False
    except DuoTasksError as e:
        print(f"Could not load tasks: {e}", file=sys.stderr)
        return False

    print(f"Welcome, {state.directory.display_name(identity.email)}.")
    return True


async def run(settings, email: str, password: str | None = None) -> int:
    state = await create_initial_state(settings=settings)
    try:
        if not await _sign_in(state, email, password):
            return 1
        await run_console_loop(state)
        return 0
    finally:
        await state.session.close()


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    # INFO on the console would interleave with the panes; the file gets everything.
    log_file = setup_logging(log_dir=settings.data_dir, console_level=max(console_level, logging.WARNING))

    logger.info("Starting %s (backend=%s, log=%s)", settings.app_name, settings.backend, log_file)

    try:
        email, password = _ask_credentials(settings)
        code = asyncio.run(run(settings, email, password))
    except (KeyboardInterrupt, EOFError):
        print()
        code = 0
    except ValueError as e:
        # configuration problems (unknown backend, bad authorized-user list, ...)
        print(f"Configuration error: {e}", file=sys.stderr)
        code = 2

    logger.info("Bye.")
    sys.exit(code)


if __name__ == "__main__":
    main()
