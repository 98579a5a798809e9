"""Bottom-up rollups per tree and cross-project flattening per user.

Nothing here is cached: every function recomputes from the trees it is
given, so results always reflect the latest snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from tasktree.config import DEFAULT_AT_RISK_MARGIN
from tasktree.tasks.model import Project, ProjectStatus, Task, TaskStatus
from tasktree.tasks.traverse import fold, walk


# ── per-tree rollup ──────────────────────────────────────────────────


@dataclass(frozen=True)
class NodeRollup:
    """Counts for a node together with all of its descendants."""

    total: int
    completed: int
    has_critical: bool

    @property
    def completion_percentage(self) -> float:
        return completion_percentage(self.completed, self.total)


@dataclass(frozen=True)
class TreeRollup:
    nodes: Mapping[str, NodeRollup]
    total: int
    completed: int
    has_critical: bool

    @property
    def completion_percentage(self) -> float:
        return completion_percentage(self.completed, self.total)


def completion_percentage(completed: int, total: int) -> float:
    """``completed / total * 100``, 0 for an empty tree, clamped to [0, 100]."""
    if total <= 0:
        return 0.0
    return max(0.0, min(100.0, completed / total * 100))


def rollup(roots: Sequence[Task]) -> TreeRollup:
    """Compute a :class:`NodeRollup` for every node in one depth-first pass."""
    nodes: dict[str, NodeRollup] = {}

    def _visit(task: Task, children: list[NodeRollup]) -> NodeRollup:
        node = NodeRollup(
            total=1 + sum(c.total for c in children),
            completed=(1 if task.is_done else 0) + sum(c.completed for c in children),
            has_critical=task.has_critical_issue or any(c.has_critical for c in children),
        )
        nodes[task.id] = node
        return node

    top = fold(roots, _visit)
    return TreeRollup(
        nodes=nodes,
        total=sum(r.total for r in top),
        completed=sum(r.completed for r in top),
        has_critical=any(r.has_critical for r in top),
    )


# ── per-project aggregate ────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectAggregate:
    project_id: str
    project_name: str
    project_type: str
    total: int
    completed: int
    has_critical: bool
    completion_percentage: float
    overdue: int
    status_counts: Mapping[TaskStatus, int]
    effective_status: ProjectStatus
    nodes: Mapping[str, NodeRollup] = field(repr=False, default_factory=dict)


def status_counts(roots: Sequence[Task]) -> dict[TaskStatus, int]:
    counts = {status: 0 for status in TaskStatus}
    for visit in walk(roots):
        counts[visit.task.status] += 1
    return counts


def count_overdue(roots: Sequence[Task], now: datetime) -> int:
    return sum(1 for visit in walk(roots) if visit.task.is_overdue(now))


def effective_status(
    project: Project,
    tree: TreeRollup,
    now: datetime,
    at_risk_margin: float = DEFAULT_AT_RISK_MARGIN,
) -> ProjectStatus:
    """Status shown on dashboards, derived from progress, dates and critical issues.

    Completed wins, then Off Track (once the end date's day has passed), then At Risk when a
    critical issue exists anywhere in the tree or progress trails elapsed
    time by more than *at_risk_margin* percentage points.
    """
    progress = tree.completion_percentage
    if project.status == ProjectStatus.COMPLETED or (tree.total > 0 and progress >= 100.0):
        return ProjectStatus.COMPLETED
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if project.end_date is not None and today > project.end_date:
        return ProjectStatus.OFF_TRACK
    if tree.has_critical:
        return ProjectStatus.AT_RISK
    if project.start_date is not None and project.end_date is not None:
        duration = (project.end_date - project.start_date).days
        if duration > 0:
            elapsed = (today - project.start_date).days
            time_progress = elapsed / duration * 100
            if progress < time_progress - at_risk_margin:
                return ProjectStatus.AT_RISK
    return ProjectStatus.ON_TRACK


def project_aggregate(
    project: Project,
    now: datetime,
    at_risk_margin: float = DEFAULT_AT_RISK_MARGIN,
) -> ProjectAggregate:
    tree = rollup(project.tasks)
    return ProjectAggregate(
        project_id=project.id,
        project_name=project.name,
        project_type=project.project_type,
        total=tree.total,
        completed=tree.completed,
        has_critical=tree.has_critical,
        completion_percentage=tree.completion_percentage,
        overdue=count_overdue(project.tasks, now),
        status_counts=status_counts(project.tasks),
        effective_status=effective_status(project, tree, now, at_risk_margin),
        nodes=tree.nodes,
    )


# ── cross-project flattening ─────────────────────────────────────────


@dataclass(frozen=True)
class AssignedTask:
    """A task pulled out of its tree, tagged with where it came from."""

    task: Task
    project_id: str
    project_name: str
    project_type: str
    parent_id: str | None
    depth: int

    @property
    def id(self) -> str:
        return self.task.id


@dataclass(frozen=True)
class UserTaskView:
    user_id: str
    tasks: tuple[AssignedTask, ...]
    overdue: tuple[AssignedTask, ...]
    due_today: tuple[AssignedTask, ...]
    critical_projects: tuple[str, ...]
    status_counts: Mapping[TaskStatus, int]

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def completed_count(self) -> int:
        return self.status_counts.get(TaskStatus.DONE, 0)

    @property
    def open_count(self) -> int:
        return self.total - self.completed_count

    @property
    def open_tasks(self) -> tuple[AssignedTask, ...]:
        return tuple(a for a in self.tasks if not a.task.is_done)

    @property
    def completion_percentage(self) -> float:
        return completion_percentage(self.completed_count, self.total)


def user_projects(user_id: str, projects: Sequence[Project]) -> list[Project]:
    return [p for p in projects if p.has_member(user_id)]


def _due_sort_key(assigned: AssignedTask) -> tuple[bool, datetime | None]:
    # Undated tasks share (True, None) and never reach a None < datetime comparison
    due = assigned.task.due_date
    return (due is None, due)


def flatten_assigned(user_id: str, projects: Sequence[Project]) -> list[AssignedTask]:
    """Every node assigned to *user_id*, at any depth, ordered by due date."""
    found: list[AssignedTask] = []
    for project in user_projects(user_id, projects):
        for visit in walk(project.tasks):
            if visit.task.is_assigned_to(user_id):
                found.append(AssignedTask(
                    task=visit.task,
                    project_id=project.id,
                    project_name=project.name,
                    project_type=project.project_type,
                    parent_id=visit.parent_id,
                    depth=visit.depth,
                ))
    found.sort(key=_due_sort_key)
    return found


def is_due_today(task: Task, now: datetime) -> bool:
    """Open and due on the calendar day of *now*, in *now*'s timezone."""
    if task.is_done or task.due_date is None:
        return False
    due = task.due_date.astimezone(now.tzinfo) if now.tzinfo else task.due_date
    return due.date() == now.date()


def critical_project_ids(projects: Sequence[Project]) -> list[str]:
    """Ids of projects holding a critical issue anywhere in their tree."""
    ids: list[str] = []
    for project in projects:
        if any(visit.task.has_critical_issue for visit in walk(project.tasks)):
            ids.append(project.id)
    return ids


def user_task_view(user_id: str, projects: Sequence[Project], now: datetime) -> UserTaskView:
    mine = user_projects(user_id, projects)
    assigned = flatten_assigned(user_id, mine)
    counts = {status: 0 for status in TaskStatus}
    for item in assigned:
        counts[item.task.status] += 1
    return UserTaskView(
        user_id=user_id,
        tasks=tuple(assigned),
        overdue=tuple(a for a in assigned if a.task.is_overdue(now)),
        due_today=tuple(a for a in assigned if is_due_today(a.task, now)),
        critical_projects=tuple(critical_project_ids(mine)),
        status_counts=counts,
    )


# ── workload ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Workload:
    pace: int
    score: int
    label: str


def _workload_label(score: int) -> str:
    if score > 20:
        return "Overloaded"
    if score > 10:
        return "High"
    if score > 5:
        return "Normal"
    return "Low"


def _open_task_weight(task: Task, now: datetime) -> int:
    if task.due_date is None:
        return 1
    days_left = (task.due_date - now).days
    if days_left < 0:
        return 5
    if days_left <= 3:
        return 4
    if days_left <= 7:
        return 3
    return 1


def workload(view: UserTaskView, now: datetime) -> Workload:
    """Weekly pace and a weighted open-task score for one user."""
    week_start = (now - timedelta(days=now.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    week_end = week_start + timedelta(days=7)
    pace = sum(
        1
        for a in view.tasks
        if a.task.is_done
        and a.task.done_date is not None
        and week_start <= a.task.done_date < week_end
    )
    score = sum(_open_task_weight(a.task, now) for a in view.open_tasks)
    return Workload(pace=pace, score=score, label=_workload_label(score))


@dataclass(frozen=True)
class MemberLoad:
    user_id: str
    open_tasks: int
    total_tasks: int


def team_workload(projects: Sequence[Project]) -> list[MemberLoad]:
    """Open and total assignments per user across *projects*, busiest first."""
    open_counts: dict[str, int] = {}
    totals: dict[str, int] = {}
    for project in projects:
        for visit in walk(project.tasks):
            for user_id in visit.task.assignee_ids:
                totals[user_id] = totals.get(user_id, 0) + 1
                if not visit.task.is_done:
                    open_counts[user_id] = open_counts.get(user_id, 0) + 1
    loads = [
        MemberLoad(user_id=uid, open_tasks=open_counts.get(uid, 0), total_tasks=total)
        for uid, total in totals.items()
    ]
    loads.sort(key=lambda m: (-m.open_tasks, -m.total_tasks, m.user_id))
    return loads
