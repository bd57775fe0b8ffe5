# tests/test_commands.py

from __future__ import annotations

import pytest

from duo_tasks.cli.bootstrap import create_initial_state
from duo_tasks.cli.commands import CommandRegistry, registry

from .conftest import ALEX_EMAIL
from .fakes import wait_until


async def _signed_in_state(settings):
    state = await create_initial_state(settings=settings)
    await state.session.sign_in(ALEX_EMAIL)
    return state


@pytest.mark.asyncio
async def test_command_registry_routes_with_and_without_emit() -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    async def echo(state, args, emit=None):
        if emit is not None:
            emit("note")
        return " ".join(args)

    reg.register("echo", echo, "echo", aliases=["e"])

    assert await reg.handle(None, "/echo a b") == "a b"
    assert await reg.handle(None, "/E x", emit=notes.append) == "x"
    assert notes == ["note"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command() -> None:
    reg = CommandRegistry()
    assert await reg.handle(None, "hello") is None
    assert "Unknown command" in (await reg.handle(None, "/nope") or "")
    assert "Empty command" in (await reg.handle(None, "/") or "")


@pytest.mark.asyncio
async def test_add_list_and_permission_denial(settings) -> None:
    state = await _signed_in_state(settings)
    client = state.session.client
    try:
        reply = await registry.handle(state, "/add Buy milk -- 2 litres @partner")
        assert reply == "Task assigned to Sam: Buy milk"
        await wait_until(lambda: len(client.tasks) == 1)

        listing = await registry.handle(state, "/list")
        assert "== Your tasks (Alex) - No tasks yet ==" in listing
        assert "Buy milk  (assigned by you)  [edit assign rm]" in listing
        assert len(state.last_listing) == 1

        denied = await registry.handle(state, "/done 1")
        assert denied == "Error: You can only mark tasks complete if they're assigned to you."
        assert client.tasks[0].completed is False

        assert (await registry.handle(state, "/done 9")).startswith("Invalid input:")
    finally:
        await state.session.close()


@pytest.mark.asyncio
async def test_delete_needs_confirmation(settings) -> None:
    state = await _signed_in_state(settings)
    client = state.session.client
    try:
        await registry.handle(state, "/add Walk dog")
        await wait_until(lambda: len(client.tasks) == 1)
        await registry.handle(state, "/list")

        prompt = await registry.handle(state, "/rm 1")
        assert "Type /rm 1 yes to confirm" in prompt
        assert len(client.tasks) == 1

        assert await registry.handle(state, "/rm 1 yes") == "Task deleted."
        await wait_until(lambda: client.tasks == [])
    finally:
        await state.session.close()


@pytest.mark.asyncio
async def test_confirmation_without_prompt_only_asks(settings) -> None:
    state = await _signed_in_state(settings)
    client = state.session.client
    try:
        await registry.handle(state, "/add Water plants")
        await wait_until(lambda: len(client.tasks) == 1)
        await registry.handle(state, "/list")

        reply = await registry.handle(state, "/rm 1 yes")
        assert "to confirm" in reply
        assert len(client.tasks) == 1
    finally:
        await state.session.close()


@pytest.mark.asyncio
async def test_toggle_and_status(settings) -> None:
    state = await _signed_in_state(settings)
    client = state.session.client
    try:
        await registry.handle(state, "/add Call mom")
        await wait_until(lambda: len(client.tasks) == 1)
        await registry.handle(state, "/list")

        assert await registry.handle(state, "/done 1") == "Task marked as completed."
        await wait_until(lambda: client.tasks[0].completed and not client.is_pending(client.tasks[0].id))
        assert client.tasks[0].completed_at is not None

        status = await registry.handle(state, "/status")
        assert "Live updates: ON" in status
        assert "1 cached, 1 visible" in status
    finally:
        await state.session.close()


@pytest.mark.asyncio
async def test_edit_keeps_a_trailing_at_word_in_the_title(settings) -> None:
    state = await _signed_in_state(settings)
    client = state.session.client
    try:
        await registry.handle(state, "/add Reply to mail")
        await wait_until(lambda: len(client.tasks) == 1)
        await registry.handle(state, "/list")

        assert await registry.handle(state, "/edit 1 Ping @sam") == "Task updated."
        await wait_until(lambda: client.tasks[0].title == "Ping @sam" and not client.is_pending(client.tasks[0].id))
        assert client.tasks[0].assigned_to == ALEX_EMAIL
    finally:
        await state.session.close()
