# tests/test_policy.py

from __future__ import annotations

import pytest

from duo_tasks.core.errors import NotAuthorized
from duo_tasks.tasks.policy import Action, permissions_for, require, require_patch
from duo_tasks.tasks.task_models import Identity, Task

from .conftest import make_row


@pytest.fixture()
def shared_task(alex, sam) -> Task:
    # Created by Alex, assigned to Sam.
    return Task.from_row(make_row("t1", title="Buy milk", created_by=alex, assigned_to=sam.email))


def test_assignee_may_toggle_but_not_edit(shared_task, sam) -> None:
    perms = permissions_for(sam, shared_task)
    assert perms.can_toggle_complete
    assert not perms.can_edit
    assert not perms.can_delete
    assert not perms.can_reassign
    with pytest.raises(NotAuthorized):
        require(sam, shared_task, Action.EDIT)


def test_creator_may_edit_but_not_toggle(shared_task, alex) -> None:
    perms = permissions_for(alex, shared_task)
    assert perms.can_edit and perms.can_delete and perms.can_reassign
    assert not perms.can_toggle_complete
    require(alex, shared_task, Action.EDIT)
    with pytest.raises(NotAuthorized, match="assigned to you"):
        require(alex, shared_task, Action.TOGGLE_COMPLETE)


def test_self_assigned_task_grants_everything(alex) -> None:
    task = Task.from_row(make_row("t2", created_by=alex))
    assert permissions_for(alex, task).allowed_actions() == list(Action)


def test_outsider_is_read_only(shared_task) -> None:
    stranger = Identity(id="x", email="someone@else.org")
    perms = permissions_for(stranger, shared_task)
    assert perms.can_view
    assert perms.allowed_actions() == [Action.VIEW]


def test_assignee_email_compare_ignores_case(alex, sam) -> None:
    task = Task.from_row(make_row("t3", created_by=alex, assigned_to=sam.email.upper()))
    assert permissions_for(sam, task).can_toggle_complete


def test_require_patch_checks_every_touched_field(shared_task, alex, sam) -> None:
    require_patch(sam, shared_task, {"completed": True})
    require_patch(alex, shared_task, {"title": "x", "assigned_to": alex.email})
    with pytest.raises(NotAuthorized):
        require_patch(sam, shared_task, {"completed": True, "title": "sneaky"})
    with pytest.raises(NotAuthorized):
        require_patch(alex, shared_task, {"completed": True})
