"""Shared fixtures for tasktree tests.

Dates in tests:
- Use the ``now`` fixture (a fixed aware instant) instead of the wall clock.
- Build tasks through ``make_task`` so defaults stay in one place.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from tasktree.tasks.model import Project, Task, TaskStatus, User

NOW = datetime(2024, 6, 12, 15, 30, tzinfo=timezone.utc)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register opt-in switch for expensive generated-tree tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run tests marked with 'slow'.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip slow tests unless explicitly enabled."""
    if config.getoption("--run-slow"):
        return

    skip_slow = pytest.mark.skip(
        reason="Slow tests are skipped by default. Use --run-slow to include them.",
    )
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def _make_task(
    id: str,
    title: str = "",
    status: TaskStatus = TaskStatus.TODO,
    assignees: list[str] | None = None,
    due: datetime | None = None,
    start: datetime | None = None,
    critical: str | None = None,
    children: list[Task] | None = None,
    done_date: datetime | None = None,
) -> Task:
    return Task(
        id=id,
        title=title or f"Task {id}",
        status=status,
        assignee_ids=frozenset(assignees or []),
        due_date=due,
        start_date=start,
        critical_issue=critical,
        children=children or [],
        done_date=done_date,
    )


def _make_project(
    id: str,
    tasks: list[Task] | None = None,
    team: list[str] | None = None,
    name: str = "",
    owner_id: str = "",
    project_type: str = "Tim Kerja",
    start: datetime | None = None,
    end: datetime | None = None,
) -> Project:
    return Project(
        id=id,
        name=name or f"Project {id}",
        owner_id=owner_id,
        team=[User(id=uid, name=uid.upper()) for uid in (team or [])],
        start_date=start,
        end_date=end,
        project_type=project_type,
        tasks=tasks or [],
    )


def random_tree(
    rng: random.Random,
    size: int,
    max_children: int = 4,
    prefix: str = "n",
) -> list[Task]:
    """Generate a random forest of *size* nodes with random fields."""
    statuses = list(TaskStatus)
    nodes: list[Task] = []
    roots: list[Task] = []
    for i in range(size):
        due = None
        if rng.random() < 0.8:
            due = NOW + timedelta(days=rng.randint(-20, 20), hours=rng.randint(0, 23))
        task = _make_task(
            f"{prefix}{i}",
            title=rng.choice(["alpha", "Beta", "gamma", "Delta", "alpha"]) + f" {rng.randint(0, 3)}",
            status=rng.choice(statuses),
            assignees=rng.sample(["u1", "u2", "u3"], rng.randint(0, 2)),
            due=due,
            critical="blocked on legal" if rng.random() < 0.1 else None,
        )
        candidates = [n for n in nodes if len(n.children) < max_children]
        if not candidates or rng.random() < 0.2:
            roots.append(task)
        else:
            rng.choice(candidates).children.append(task)
        nodes.append(task)
    return roots


def chain(depth: int, prefix: str = "d") -> list[Task]:
    """A single path of *depth* nodes; only the deepest one is Done."""
    node = _make_task(f"{prefix}{depth - 1}", status=TaskStatus.DONE)
    for i in range(depth - 2, -1, -1):
        node = _make_task(f"{prefix}{i}", children=[node])
    return [node]


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


@pytest.fixture
def make_project():
    """Factory fixture that creates Project instances."""
    return _make_project


@pytest.fixture
def make_random_tree():
    """Factory fixture: ``make_random_tree(seed, size)`` -> random forest."""

    def _make(seed: int, size: int, max_children: int = 4) -> list[Task]:
        return random_tree(random.Random(seed), size, max_children)

    return _make


@pytest.fixture
def make_chain():
    """Factory fixture: ``make_chain(depth)`` -> one root with a single deep path."""
    return chain


@pytest.fixture
def scenario_project(now: datetime) -> Project:
    """A(children: A1[Done], A2[Blocked, due yesterday]), B[Done]."""
    return _make_project("P", tasks=[
        _make_task("A", title="Draft regulation", children=[
            _make_task("A1", title="Collect comments", status=TaskStatus.DONE),
            _make_task("A2", title="Legal review", status=TaskStatus.BLOCKED, due=now - timedelta(days=1)),
        ]),
        _make_task("B", title="Publish notice", status=TaskStatus.DONE),
    ])
