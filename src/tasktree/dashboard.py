"""Navigation badge counters merged from independently fetched collections."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from tasktree.aggregate import (
    critical_project_ids,
    project_aggregate,
    user_projects,
    user_task_view,
)
from tasktree.config import DEFAULT_AT_RISK_MARGIN
from tasktree.tasks.model import Project, ProjectStatus

OPEN_TASKS = "openTasks"
OVERDUE_TASKS = "overdueTasks"
DUE_TODAY = "dueToday"
CRITICAL_PROJECTS = "criticalProjects"
AT_RISK_PROJECTS = "atRiskProjects"

# Counters that are rendered with an alert style rather than a neutral one
SEVERITY: Mapping[str, str] = MappingProxyType({
    CRITICAL_PROJECTS: "critical",
    OVERDUE_TASKS: "warning",
    AT_RISK_PROJECTS: "warning",
})


def project_counter(collection: str) -> str:
    return f"projects:{collection}"


@dataclass(frozen=True)
class CollectionAggregate:
    """What one watched collection contributes to the badges for one user."""

    collection: str
    project_count: int = 0
    open_tasks: int = 0
    overdue_tasks: int = 0
    due_today: int = 0
    critical_projects: int = 0
    at_risk_projects: int = 0

    @classmethod
    def empty(cls, collection: str) -> CollectionAggregate:
        return cls(collection=collection)


def collection_aggregate(
    collection: str,
    projects: Sequence[Project],
    user_id: str,
    now: datetime,
    at_risk_margin: float = DEFAULT_AT_RISK_MARGIN,
) -> CollectionAggregate:
    view = user_task_view(user_id, projects, now)
    mine = user_projects(user_id, projects)
    at_risk = sum(
        1
        for project in mine
        if project_aggregate(project, now, at_risk_margin).effective_status
        in (ProjectStatus.AT_RISK, ProjectStatus.OFF_TRACK)
    )
    return CollectionAggregate(
        collection=collection,
        project_count=len(projects),
        open_tasks=view.open_count,
        overdue_tasks=len(view.overdue),
        due_today=len(view.due_today),
        critical_projects=len(critical_project_ids(mine)),
        at_risk_projects=at_risk,
    )


@dataclass(frozen=True)
class Badge:
    name: str
    count: int
    severity: str = "info"


@dataclass(frozen=True)
class BadgeCounts:
    counters: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def visible(self) -> list[Badge]:
        """Only counters above zero are rendered."""
        return [
            Badge(name=name, count=count, severity=SEVERITY.get(name, "info"))
            for name, count in self.counters.items()
            if count > 0
        ]


class DashboardProjector:
    """Sums per-collection aggregates into one set of badge counters.

    Each task lives in exactly one project tree and each project in exactly
    one collection, so merging is a plain sum. Collections that have not
    reported yet contribute zero.
    """

    def __init__(self, collections: Iterable[str] = ()) -> None:
        self._collections: list[str] = list(dict.fromkeys(collections))
        self._aggregates: dict[str, CollectionAggregate] = {}

    @property
    def collections(self) -> list[str]:
        return list(self._collections)

    def update(self, aggregate: CollectionAggregate) -> None:
        if aggregate.collection not in self._collections:
            self._collections.append(aggregate.collection)
        self._aggregates[aggregate.collection] = aggregate

    def reported(self) -> list[str]:
        return [c for c in self._collections if c in self._aggregates]

    def aggregate_for(self, collection: str) -> CollectionAggregate:
        return self._aggregates.get(collection) or CollectionAggregate.empty(collection)

    def project(self) -> BadgeCounts:
        return project_badges([self.aggregate_for(c) for c in self._collections])


def project_badges(aggregates: Iterable[CollectionAggregate]) -> BadgeCounts:
    """Stateless merge of collection aggregates into badge counters."""
    counters: dict[str, int] = {}
    totals = {
        OPEN_TASKS: 0,
        OVERDUE_TASKS: 0,
        DUE_TODAY: 0,
        CRITICAL_PROJECTS: 0,
        AT_RISK_PROJECTS: 0,
    }
    for agg in aggregates:
        name = project_counter(agg.collection)
        counters[name] = counters.get(name, 0) + agg.project_count
        totals[OPEN_TASKS] += agg.open_tasks
        totals[OVERDUE_TASKS] += agg.overdue_tasks
        totals[DUE_TODAY] += agg.due_today
        totals[CRITICAL_PROJECTS] += agg.critical_projects
        totals[AT_RISK_PROJECTS] += agg.at_risk_projects
    counters.update(totals)
    return BadgeCounts(counters=MappingProxyType(counters))
