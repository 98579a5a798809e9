"""Pure entry points for the UI layer.

Each function depends only on its arguments; there is no module state.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from tasktree.aggregate import TreeRollup, UserTaskView, rollup, user_task_view
from tasktree.filtering import Predicate, filter_tree
from tasktree.sorting import SortKey, sort_tree
from tasktree.tasks.model import Project, Task


def _aware(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _roots(tree: Project | Sequence[Task]) -> Sequence[Task]:
    return tree.tasks if isinstance(tree, Project) else tree


def get_filtered_sorted_tree(
    tree: Project | Sequence[Task],
    predicate: Predicate | None = None,
    comparator: Sequence[SortKey] = (),
) -> list[Task]:
    """Filter (ancestor-preserving) then sort each level of *tree*."""
    roots = _roots(tree)
    if predicate is not None:
        roots = filter_tree(roots, predicate)
    return sort_tree(roots, comparator)


def get_project_aggregate(tree: Project | Sequence[Task]) -> TreeRollup:
    return rollup(_roots(tree))


def get_user_task_view(
    user_id: str,
    trees: Sequence[Project],
    now: datetime | None = None,
) -> dict[str, Any]:
    """The "my tasks" view: assigned tasks plus overdue / due-today / critical buckets.

    Naive *now* values are taken as UTC.
    """
    view: UserTaskView = user_task_view(user_id, trees, _aware(now))
    return {
        "list": list(view.tasks),
        "overdue": list(view.overdue),
        "dueToday": list(view.due_today),
        "criticalProjects": list(view.critical_projects),
        "openCount": view.open_count,
        "completedCount": view.completed_count,
        "completionPercentage": view.completion_percentage,
    }
