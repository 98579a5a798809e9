"""Ancestor-preserving recursive filtering of task trees.

A node survives when it matches the predicate itself or when at least one
of its descendants survives. Non-matching ancestors are kept only as the
path leading to a match, so a deep hit is always shown in context.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, replace

from tasktree.tasks.model import Task, TaskStatus
from tasktree.tasks.traverse import walk, fold

Predicate = Callable[[Task], bool]


@dataclass(frozen=True)
class TaskFilter:
    """Field criteria combined with AND. Unset criteria match everything.

    ``text`` is a case-insensitive substring match on the title; blank text
    matches every node. ``status`` may be a single status or a collection.
    """

    text: str = ""
    status: TaskStatus | Collection[TaskStatus] | None = None
    assignee_id: str | None = None

    def _statuses(self) -> frozenset[TaskStatus] | None:
        if self.status is None:
            return None
        if isinstance(self.status, TaskStatus):
            return frozenset({self.status})
        return frozenset(self.status)

    @property
    def is_empty(self) -> bool:
        statuses = self._statuses()
        return not self.text.strip() and not statuses and not self.assignee_id

    def __call__(self, task: Task) -> bool:
        needle = self.text.strip().casefold()
        if needle and needle not in task.title.casefold():
            return False
        statuses = self._statuses()
        if statuses and task.status not in statuses:
            return False
        if self.assignee_id and not task.is_assigned_to(self.assignee_id):
            return False
        return True


def all_of(*predicates: Predicate) -> Predicate:
    """Combine predicates with AND semantics."""

    def _combined(task: Task) -> bool:
        return all(predicate(task) for predicate in predicates)

    return _combined


def filter_tree(roots: Sequence[Task], predicate: Predicate) -> list[Task]:
    """Return a pruned copy of *roots*; the input tree is not modified."""

    def _keep(task: Task, kept_children: list[Task | None]) -> Task | None:
        children = [child for child in kept_children if child is not None]
        if children or predicate(task):
            return replace(task, children=children)
        return None

    return [task for task in fold(roots, _keep) if task is not None]


def matching_ids(roots: Sequence[Task], predicate: Predicate) -> set[str]:
    """Ids of nodes that match on their own fields (not merely as ancestors)."""
    return {visit.task.id for visit in walk(roots) if predicate(visit.task)}
