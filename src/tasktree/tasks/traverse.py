"""Iterative depth-first traversal over task trees.

Trees can be arbitrarily deep, so nothing here recurses on the Python stack.
Every walk tracks the node objects it has entered; reaching the same object
twice (a cycle, or a node shared by two parents) raises ``StructuralError``
instead of looping.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

from tasktree.config import DEFAULT_MAX_DEPTH
from tasktree.errors import StructuralError
from tasktree.tasks.model import Task

R = TypeVar("R")


@dataclass(frozen=True)
class TaskVisit:
    task: Task
    depth: int
    parent_id: str | None
    path: tuple[str, ...]


def _guard(task: Task, depth: int, seen: set[int], max_depth: int) -> None:
    if id(task) in seen:
        raise StructuralError(f"Task {task.id!r} reached twice during traversal (cycle or shared node)")
    if depth > max_depth:
        raise StructuralError(f"Task {task.id!r} exceeds the maximum tree depth of {max_depth}")
    seen.add(id(task))


def walk(roots: Sequence[Task], max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[TaskVisit]:
    """Yield every node in pre-order (parents before children, siblings in order)."""
    seen: set[int] = set()
    stack: list[tuple[Task, int, str | None, tuple[str, ...]]] = [
        (task, 0, None, ()) for task in reversed(roots)
    ]
    while stack:
        task, depth, parent_id, parent_path = stack.pop()
        _guard(task, depth, seen, max_depth)
        path = parent_path + (task.id,)
        yield TaskVisit(task, depth, parent_id, path)
        for child in reversed(task.children):
            stack.append((child, depth + 1, task.id, path))


def fold(
    roots: Sequence[Task],
    visit: Callable[[Task, list[R]], R],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[R]:
    """Post-order fold: ``visit(task, child_results)`` runs after all children.

    Returns the results for *roots*, in order. ``child_results`` preserves
    sibling order.
    """
    seen: set[int] = set()
    pending: dict[int, list[R]] = {}
    root_results: list[R] = []
    # (task, parent key, depth, children already expanded)
    stack: list[tuple[Task, int | None, int, bool]] = [
        (task, None, 0, False) for task in reversed(roots)
    ]
    while stack:
        task, parent_key, depth, expanded = stack.pop()
        key = id(task)
        if not expanded:
            _guard(task, depth, seen, max_depth)
            pending[key] = []
            stack.append((task, parent_key, depth, True))
            for child in reversed(task.children):
                stack.append((child, key, depth + 1, False))
            continue
        result = visit(task, pending.pop(key))
        if parent_key is None:
            root_results.append(result)
        else:
            pending[parent_key].append(result)
    return root_results


def find_task(roots: Sequence[Task], task_id: str) -> Task | None:
    for visit in walk(roots):
        if visit.task.id == task_id:
            return visit.task
    return None


def find_visit(roots: Sequence[Task], task_id: str) -> TaskVisit | None:
    for visit in walk(roots):
        if visit.task.id == task_id:
            return visit
    return None


def count_nodes(roots: Sequence[Task]) -> int:
    return sum(1 for _ in walk(roots))


def iter_ids(roots: Sequence[Task]) -> Iterator[str]:
    for visit in walk(roots):
        yield visit.task.id
