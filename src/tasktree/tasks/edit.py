"""Structural edits on task trees: add, replace and delete subtrees.

Every edit returns a new root list and leaves its input untouched; nodes
outside the edited path are shared with the input, which is safe because
nodes are only ever replaced, never mutated in place.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace

from tasktree.tasks.model import Task
from tasktree.tasks.traverse import find_visit, iter_ids, walk


class TaskNotFound(LookupError):
    """The task or parent id does not exist in the tree."""


def _rebuild_path(
    roots: Sequence[Task],
    path: tuple[str, ...],
    change: Callable[[list[Task], int], list[Task]],
) -> list[Task]:
    """Copy the nodes along *path* and apply *change* to the last sibling list.

    *change* receives the sibling list that holds ``path[-1]`` and that
    node's index in it.
    """
    levels: list[tuple[list[Task], int]] = []
    siblings = list(roots)
    for depth, task_id in enumerate(path):
        index = next(i for i, t in enumerate(siblings) if t.id == task_id)
        levels.append((siblings, index))
        if depth < len(path) - 1:
            siblings = list(siblings[index].children)

    siblings, index = levels[-1]
    rebuilt = change(siblings, index)
    for parent_siblings, parent_index in reversed(levels[:-1]):
        parent_siblings = list(parent_siblings)
        parent_siblings[parent_index] = replace(parent_siblings[parent_index], children=rebuilt)
        rebuilt = parent_siblings
    return rebuilt


def add_task(roots: Sequence[Task], task: Task, parent_id: str | None = None) -> list[Task]:
    """Append *task* as a root, or as the last child of *parent_id*."""
    existing = set(iter_ids(roots))
    for visit in walk([task]):
        if visit.task.id in existing:
            raise ValueError(f"Task id {visit.task.id!r} already exists in this project")
    if parent_id is None:
        return [*roots, task]

    parent = find_visit(roots, parent_id)
    if parent is None:
        raise TaskNotFound(f"Parent task {parent_id!r} not found")

    def _append(siblings: list[Task], index: int) -> list[Task]:
        node = siblings[index]
        siblings[index] = replace(node, children=[*node.children, task])
        return siblings

    return _rebuild_path(roots, parent.path, _append)


def replace_task(roots: Sequence[Task], updated: Task) -> list[Task]:
    """Replace the node with ``updated.id``; its existing children are kept."""
    target = find_visit(roots, updated.id)
    if target is None:
        raise TaskNotFound(f"Task {updated.id!r} not found")

    def _swap(siblings: list[Task], index: int) -> list[Task]:
        siblings[index] = replace(updated, children=list(siblings[index].children))
        return siblings

    return _rebuild_path(roots, target.path, _swap)


def delete_task(roots: Sequence[Task], task_id: str) -> list[Task]:
    """Remove the node and its whole subtree."""
    target = find_visit(roots, task_id)
    if target is None:
        raise TaskNotFound(f"Task {task_id!r} not found")

    def _drop(siblings: list[Task], index: int) -> list[Task]:
        del siblings[index]
        return siblings

    return _rebuild_path(roots, target.path, _drop)
