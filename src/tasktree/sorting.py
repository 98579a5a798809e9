"""Per-level recursive sorting of task trees.

Each sibling group is ordered on its own by a comparator chain, then the
same chain is applied to every node's children. The hierarchy is never
flattened. Python's sort is stable, so nodes that compare equal keep their
original order and sorting an already-sorted tree changes nothing.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from functools import cmp_to_key
from typing import Any

from tasktree.tasks.model import Task
from tasktree.tasks.traverse import fold

SORT_FIELDS: dict[str, Callable[[Task], Any]] = {
    "title": lambda t: t.title.casefold(),
    "status": lambda t: t.status.rank,
    "start_date": lambda t: t.start_date,
    "due_date": lambda t: t.due_date,
    "done_date": lambda t: t.done_date,
    "assignee_count": lambda t: len(t.assignee_ids),
}

DATE_FIELDS = frozenset({"start_date", "due_date", "done_date"})

_FIELD_ALIASES = {
    "startdate": "start_date",
    "duedate": "due_date",
    "donedate": "done_date",
    "assignees": "assignee_count",
    "assigneecount": "assignee_count",
}


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False

    def __post_init__(self) -> None:
        if self.field not in SORT_FIELDS:
            allowed = ", ".join(SORT_FIELDS)
            raise ValueError(f"Unknown sort field {self.field!r}. Valid fields: {allowed}.")

    @property
    def is_date(self) -> bool:
        return self.field in DATE_FIELDS

    @classmethod
    def parse(cls, text: str) -> SortKey:
        """Parse ``field`` or ``field:asc|desc``; camelCase names are accepted."""
        name, _, direction = text.strip().partition(":")
        name = name.strip()
        key = name.lower().replace("-", "_")
        key = _FIELD_ALIASES.get(key.replace("_", ""), key)
        direction = direction.strip().lower()
        if direction not in ("", "asc", "desc"):
            raise ValueError(f"Unknown sort direction {direction!r} (use 'asc' or 'desc').")
        return cls(field=key, descending=direction == "desc")


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _compare_key(key: SortKey, left: Task, right: Task) -> int:
    getter = SORT_FIELDS[key.field]
    a, b = getter(left), getter(right)
    # Missing values (no date) go last whatever the direction
    if a is None or b is None:
        return (a is None) - (b is None)
    if key.is_date and not (isinstance(a, datetime) and isinstance(b, datetime)):
        return (not isinstance(a, datetime)) - (not isinstance(b, datetime))
    result = _cmp(a, b)
    return -result if key.descending else result


def make_comparator(keys: Sequence[SortKey]) -> Callable[[Task, Task], int]:
    """Build a comparator for the chain *keys*, tie-broken by title."""
    keys = tuple(keys)

    def _compare(left: Task, right: Task) -> int:
        for key in keys:
            result = _compare_key(key, left, right)
            if result:
                return result
        return _cmp(left.title.casefold(), right.title.casefold())

    return _compare


def sort_siblings(tasks: Sequence[Task], keys: Sequence[SortKey]) -> list[Task]:
    """Sort one sibling group only, without touching children."""
    return sorted(tasks, key=cmp_to_key(make_comparator(keys)))


def sort_tree(roots: Sequence[Task], keys: Sequence[SortKey]) -> list[Task]:
    """Return a copy of *roots* with every sibling group sorted by *keys*."""
    order = cmp_to_key(make_comparator(keys))

    def _sorted(task: Task, children: list[Task]) -> Task:
        return replace(task, children=sorted(children, key=order))

    return sorted(fold(roots, _sorted), key=order)
