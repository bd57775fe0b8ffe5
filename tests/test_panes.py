# tests/test_panes.py

from __future__ import annotations

from datetime import timedelta, timezone

import pytest

from duo_tasks.cli.panes import build_panes, describe_event, format_task_line, render_panes
from duo_tasks.tasks.client import TaskStoreClient
from duo_tasks.tasks.events import Deleted, Inserted
from duo_tasks.tasks.task_models import Task

from .conftest import NOW, make_row


def _task(task_id: str, **kw) -> Task:
    return Task.from_row(make_row(task_id, **kw))


def test_panes_split_by_assignee_with_me_first(directory, alex, sam) -> None:
    tasks = [
        _task("a", created_by=alex, title="Mine"),
        _task("b", created_by=alex, title="For Sam", assigned_to=sam.email),
        _task("c", created_by=sam, title="Sam's own", completed=True, completed_at=NOW),
    ]

    mine, theirs = build_panes(tasks, sam, directory, NOW, timezone.utc)

    assert mine.title == "Your tasks (Sam)"
    assert [t.id for t in mine.tasks] == ["b", "c"]
    assert mine.progress == "1 of 2 completed"
    assert theirs.title == "Alex's tasks"
    assert [t.id for t in theirs.tasks] == ["a"]


def test_empty_pane_and_hidden_completed_tasks(directory, alex) -> None:
    old = _task("old", created_by=alex, completed=True, completed_at=NOW - timedelta(days=2))

    mine, theirs = build_panes([old], alex, directory, NOW, timezone.utc)

    assert mine.tasks == []
    assert mine.progress == "No tasks yet"
    assert theirs.progress == "No tasks yet"


def test_task_line_shows_only_permitted_actions(directory, alex, sam) -> None:
    task = _task("b", created_by=alex, title="Buy milk", assigned_to=sam.email, description="2 litres")

    as_sam = format_task_line(1, task, sam, directory)
    as_alex = format_task_line(1, task, alex, directory, busy=True)

    assert as_sam.splitlines()[0] == "  1. [ ] Buy milk  (from Alex)  [done]"
    assert as_sam.splitlines()[1].strip() == "2 litres"
    assert as_alex.splitlines()[0] == "  1. [ ] Buy milk  (assigned by you)  [edit assign rm] saving..."


@pytest.mark.asyncio
async def test_render_numbers_rows_across_panes(fake_store, directory, alex, sam) -> None:
    fake_store.seed(make_row("s1", created_by=sam, assigned_to=sam.email, created_at=NOW))
    fake_store.seed(make_row("a1", created_by=alex, created_at=NOW - timedelta(minutes=1)))
    client = TaskStoreClient(fake_store, lambda: alex)
    await client.load()

    text, listing = render_panes(client, alex, directory, NOW, timezone.utc)

    assert listing == ["a1", "s1"]
    assert text.startswith("== Your tasks (Alex) - 0 of 1 completed ==")
    assert "== Sam's tasks - 0 of 1 completed ==" in text
    assert "[read-only]" in text


def test_describe_event_from_my_point_of_view(directory, alex, sam) -> None:
    from_sam = _task("x", created_by=sam, title="Walk dog", assigned_to=alex.email)

    assert describe_event(Inserted(from_sam), alex, directory) == 'Sam added "Walk dog" for you.'
    assert describe_event(Deleted("x"), alex, directory) == "A task was deleted."


def test_creator_without_stored_email_is_named_from_sign_in_ids(directory, alex, sam) -> None:
    # Rows from before created_by_email existed carry only the creator id.
    legacy = Task.from_row({**make_row("old", created_by=sam, assigned_to=alex.email), "created_by_email": ""})
    directory.remember(sam)

    line = format_task_line(1, legacy, alex, directory)

    assert "(from Sam)" in line
    assert describe_event(Inserted(legacy), alex, directory).startswith("Sam added")
