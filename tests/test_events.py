# tests/test_events.py

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from duo_tasks.tasks.events import Deleted, Inserted, Updated, apply_event, event_from_change
from duo_tasks.tasks.task_models import Task

from .conftest import NOW, make_row


def _task(task_id: str, who, minutes: int = 0, **kw) -> Task:
    return Task.from_row(make_row(task_id, created_by=who, created_at=NOW + timedelta(minutes=minutes), **kw))


def test_inserted_goes_to_front_and_keeps_order(alex) -> None:
    older = _task("a", alex, minutes=0)
    newer = _task("b", alex, minutes=5)
    middle = _task("c", alex, minutes=2)

    tasks = apply_event([], Inserted(older))
    tasks = apply_event(tasks, Inserted(newer))
    tasks = apply_event(tasks, Inserted(middle))

    assert [t.id for t in tasks] == ["b", "c", "a"]


def test_same_update_twice_equals_once(alex) -> None:
    base = [_task("a", alex), _task("b", alex, minutes=1)]
    changed = replace(base[0], title="Renamed")

    once = apply_event(base, Updated(changed))
    twice = apply_event(once, Updated(changed))

    assert once == twice
    assert [t.title for t in once if t.id == "a"] == ["Renamed"]


def test_repeated_insert_replaces_instead_of_duplicating(alex) -> None:
    t = _task("a", alex)
    tasks = apply_event(apply_event([], Inserted(t)), Inserted(t))
    assert tasks == [t]


def test_update_for_unknown_task_inserts_it(alex) -> None:
    t = _task("late", alex)
    assert apply_event([], Updated(t)) == [t]


def test_delete_unknown_is_noop_and_delete_known_removes(alex) -> None:
    tasks = [_task("a", alex)]
    assert apply_event(tasks, Deleted("zzz")) == tasks
    assert apply_event(tasks, Deleted("a")) == []


def test_event_from_change_parses_store_records(alex) -> None:
    row = make_row("a", created_by=alex, title="Buy milk")

    ins = event_from_change("INSERT", row)
    upd = event_from_change("update", row, {"id": "a"})
    dele = event_from_change("DELETE", None, {"id": "a"})

    assert isinstance(ins, Inserted) and ins.task.title == "Buy milk"
    assert isinstance(upd, Updated)
    assert dele == Deleted("a")
    assert event_from_change("TRUNCATE", row) is None
    assert event_from_change("INSERT", None) is None


def test_row_completed_at_follows_completed(alex) -> None:
    open_row = make_row("a", created_by=alex, completed=False, completed_at=NOW)
    done_row = make_row("b", created_by=alex, completed=True, completed_at=None)

    assert Task.from_row(open_row).completed_at is None
    assert Task.from_row(done_row).completed_at is not None
