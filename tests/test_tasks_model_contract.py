"""Contract tests for task data models used across normalize/filter/sort/aggregate."""

from __future__ import annotations

from dataclasses import FrozenInstanceError, fields
from datetime import timedelta

import pytest

from tasktree.tasks.model import Attachment, Project, ProjectStatus, Task, TaskStatus, User


def test_task_has_store_fields() -> None:
    names = {f.name for f in fields(Task)}
    assert {
        "id", "title", "assignee_ids", "start_date", "due_date",
        "status", "done_date", "critical_issue", "attachments", "children",
    } <= names


def test_status_values_match_store_strings() -> None:
    assert [s.value for s in TaskStatus] == ["To Do", "In Progress", "Done", "Blocked"]
    assert TaskStatus("Done") is TaskStatus.DONE
    assert [s.value for s in ProjectStatus] == ["On Track", "At Risk", "Off Track", "Completed"]


def test_status_rank_orders_workflow() -> None:
    ranked = sorted(TaskStatus, key=lambda s: s.rank)
    assert ranked == [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.DONE]


def test_task_defaults_are_not_shared() -> None:
    a, b = Task(id="a", title="A"), Task(id="b", title="B")
    a.children.append(Task(id="c", title="C"))
    assert b.children == []
    assert a.status == TaskStatus.TODO


def test_overdue_needs_due_date_and_open_status(now) -> None:
    assert not Task(id="t", title="t").is_overdue(now)
    late = Task(id="t", title="t", due_date=now - timedelta(minutes=1))
    assert late.is_overdue(now)
    assert not Task(id="t", title="t", due_date=late.due_date, status=TaskStatus.DONE).is_overdue(now)


def test_critical_issue_flag() -> None:
    assert Task(id="t", title="t", critical_issue="blocked by legal").has_critical_issue
    assert not Task(id="t", title="t", critical_issue="").has_critical_issue


def test_assignment() -> None:
    task = Task(id="t", title="t", assignee_ids=frozenset({"u1", "u2"}))
    assert task.is_assigned_to("u2")
    assert not task.is_assigned_to("u3")


def test_value_types_are_frozen() -> None:
    with pytest.raises(FrozenInstanceError):
        User(id="u1").name = "x"  # type: ignore[misc]
    with pytest.raises(FrozenInstanceError):
        Attachment(name="a", url="u").url = "v"  # type: ignore[misc]


def test_project_membership() -> None:
    project = Project(id="p", owner_id="boss", team=[User(id="u1")])
    assert project.has_member("boss")
    assert project.has_member("u1")
    assert not project.has_member("u2")
    assert not project.has_member("")
