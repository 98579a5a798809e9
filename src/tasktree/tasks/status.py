"""Task status workflow.

Allowed moves::

    To Do       -> In Progress, Blocked, Done
    In Progress -> To Do, Blocked, Done
    Blocked     -> To Do, In Progress
    Done        -> To Do, In Progress      (reopen)

Entering Done stamps ``done_date``; leaving Done clears it.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from tasktree import log
from tasktree.errors import InvalidTransition
from tasktree.tasks.model import Task, TaskStatus

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.DONE}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.TODO, TaskStatus.BLOCKED, TaskStatus.DONE}),
    TaskStatus.BLOCKED: frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS}),
    TaskStatus.DONE: frozenset({TaskStatus.TODO, TaskStatus.IN_PROGRESS}),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def transition(task: Task, target: TaskStatus, now: datetime) -> Task:
    """Return a copy of *task* moved to *target*.

    Same-status moves return *task* unchanged. Raises ``InvalidTransition``
    for moves the workflow does not allow (e.g. Blocked -> Done).
    """
    if task.status == target:
        return task
    if target not in ALLOWED_TRANSITIONS[task.status]:
        raise InvalidTransition(
            f"Task {task.id}: cannot move from {task.status.value!r} to {target.value!r}"
        )

    done_date = task.done_date
    if target == TaskStatus.DONE:
        done_date = now
    elif task.status == TaskStatus.DONE:
        done_date = None

    log.debug(f"Task {task.id}: {task.status.value} -> {target.value}")
    return replace(task, status=target, done_date=done_date)


def complete(task: Task, now: datetime) -> Task:
    return transition(task, TaskStatus.DONE, now)


def reopen(task: Task, now: datetime) -> Task:
    """Move a Done task back to To Do, clearing its completion date."""
    return transition(task, TaskStatus.TODO, now)
