"""Tests for tasktree.aggregate: rollups, user views, workload."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tasktree.aggregate import (
    completion_percentage,
    count_overdue,
    critical_project_ids,
    effective_status,
    flatten_assigned,
    is_due_today,
    project_aggregate,
    rollup,
    status_counts,
    team_workload,
    user_task_view,
    workload,
)
from tasktree.tasks.model import ProjectStatus, TaskStatus
from tasktree.tasks.status import complete, transition
from tasktree.tasks.traverse import count_nodes, walk


# ═══════════════════════════════════════════════════════════════════
#  Rollup
# ═══════════════════════════════════════════════════════════════════


class TestRollup:
    def test_scenario_totals(self, scenario_project):
        tree = rollup(scenario_project.tasks)
        assert tree.total == 4
        assert tree.completed == 2
        assert tree.has_critical is False
        assert tree.completion_percentage == 50.0

    def test_per_node_counts(self, scenario_project):
        nodes = rollup(scenario_project.tasks).nodes
        assert (nodes["A"].total, nodes["A"].completed) == (3, 1)
        assert (nodes["A1"].total, nodes["A1"].completed) == (1, 1)
        assert (nodes["B"].total, nodes["B"].completed) == (1, 1)

    def test_critical_bubbles_up(self, make_task):
        roots = [make_task("r", children=[make_task("c", children=[make_task("g", critical="no budget")])])]
        nodes = rollup(roots).nodes
        assert nodes["r"].has_critical
        assert nodes["c"].has_critical
        assert rollup(roots).has_critical

    def test_empty_tree(self):
        tree = rollup([])
        assert tree.total == 0
        assert tree.completed == 0
        assert tree.completion_percentage == 0.0

    def test_single_node(self, make_task):
        tree = rollup([make_task("only", status=TaskStatus.DONE)])
        assert tree.total == 1
        assert tree.completion_percentage == 100.0

    def test_deep_chain(self, make_chain):
        tree = rollup(make_chain(3000))
        assert tree.total == 3000
        assert tree.completed == 1
        assert tree.nodes["d0"].total == 3000

    def test_total_matches_node_count_on_random_trees(self, make_random_tree):
        for seed in range(10):
            roots = make_random_tree(seed, 90)
            tree = rollup(roots)
            assert tree.total == count_nodes(roots)
            assert tree.completed == sum(1 for v in walk(roots) if v.task.is_done)
            assert 0.0 <= tree.completion_percentage <= 100.0

    @pytest.mark.slow
    def test_large_random_tree(self, make_random_tree):
        roots = make_random_tree(99, 3000, max_children=2)
        assert rollup(roots).total == 3000

    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0.0),
        (0, 4, 0.0),
        (1, 4, 25.0),
        (4, 4, 100.0),
        (5, 4, 100.0),
        (-1, 4, 0.0),
    ])
    def test_completion_percentage_clamped(self, completed, total, expected):
        assert completion_percentage(completed, total) == expected


class TestProjectAggregate:
    def test_scenario(self, scenario_project, now):
        agg = project_aggregate(scenario_project, now)
        assert agg.total == 4
        assert agg.completed == 2
        assert agg.overdue == 1
        assert agg.status_counts[TaskStatus.BLOCKED] == 1
        assert agg.status_counts[TaskStatus.IN_PROGRESS] == 0
        assert agg.effective_status == ProjectStatus.ON_TRACK

    def test_completing_overdue_task_removes_it(self, scenario_project, now):
        a2 = scenario_project.tasks[0].children[1]
        assert count_overdue(scenario_project.tasks, now) == 1
        # Blocked cannot go straight to Done
        done = complete(transition(a2, TaskStatus.IN_PROGRESS, now), now)
        scenario_project.tasks[0].children[1] = done
        assert count_overdue(scenario_project.tasks, now) == 0
        assert status_counts(scenario_project.tasks)[TaskStatus.DONE] == 3

    def test_due_exactly_now_is_not_overdue(self, make_task, now):
        assert count_overdue([make_task("t", due=now)], now) == 0
        assert count_overdue([make_task("t", due=now - timedelta(seconds=1))], now) == 1


class TestEffectiveStatus:
    def _status(self, project, now, margin=20.0):
        return effective_status(project, rollup(project.tasks), now, margin)

    def test_stored_completed_wins(self, make_project, make_task, now):
        project = make_project("p", tasks=[make_task("t")], end=now - timedelta(days=5))
        project.status = ProjectStatus.COMPLETED
        assert self._status(project, now) == ProjectStatus.COMPLETED

    def test_all_done_is_completed(self, make_project, make_task, now):
        project = make_project("p", tasks=[make_task("t", status=TaskStatus.DONE)], end=now - timedelta(days=1))
        assert self._status(project, now) == ProjectStatus.COMPLETED

    def test_empty_project_is_not_completed(self, make_project, now):
        assert self._status(make_project("p"), now) == ProjectStatus.ON_TRACK

    def test_past_end_date_is_off_track(self, make_project, make_task, now):
        project = make_project("p", tasks=[make_task("t")], end=now - timedelta(days=1))
        assert self._status(project, now) == ProjectStatus.OFF_TRACK

    def test_final_day_is_not_off_track(self, make_project, make_task, now):
        final_day = now.replace(hour=0, minute=0)
        project = make_project("p", tasks=[make_task("t")], start=now - timedelta(days=163), end=final_day)
        assert self._status(project, now, margin=200.0) == ProjectStatus.ON_TRACK
        assert self._status(project, now + timedelta(days=1), margin=200.0) == ProjectStatus.OFF_TRACK

    def test_critical_issue_is_at_risk(self, make_project, make_task, now):
        project = make_project("p", tasks=[make_task("t", children=[make_task("c", critical="vendor gone")])])
        assert self._status(project, now) == ProjectStatus.AT_RISK

    def test_progress_behind_schedule_is_at_risk(self, make_project, make_task, now):
        # 80% of the time elapsed, 25% done
        tasks = [make_task("t1", status=TaskStatus.DONE)] + [make_task(f"o{i}") for i in range(3)]
        project = make_project("p", tasks=tasks, start=now - timedelta(days=80), end=now + timedelta(days=20))
        assert self._status(project, now) == ProjectStatus.AT_RISK
        assert self._status(project, now, margin=60.0) == ProjectStatus.ON_TRACK

    def test_progress_on_schedule(self, make_project, make_task, now):
        tasks = [make_task("t1", status=TaskStatus.DONE), make_task("t2")]
        project = make_project("p", tasks=tasks, start=now - timedelta(days=50), end=now + timedelta(days=50))
        assert self._status(project, now) == ProjectStatus.ON_TRACK


# ═══════════════════════════════════════════════════════════════════
#  User views
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def user_projects(make_project, make_task, now):
    p1 = make_project("p1", team=["u1", "u2"], tasks=[
        make_task("t1", assignees=["u1"], due=now + timedelta(days=5), children=[
            make_task("t1.1", assignees=["u1", "u2"], due=now - timedelta(days=2)),
            make_task("t1.2", assignees=["u2"], critical="missing sign-off"),
        ]),
        make_task("t2", assignees=["u1"], status=TaskStatus.DONE, done_date=now - timedelta(days=1)),
    ])
    p2 = make_project("p2", owner_id="u1", project_type="Rulemaking", tasks=[
        make_task("r1", assignees=["u1"], due=now.replace(hour=23, minute=0)),
        make_task("r2", assignees=["u1"]),
    ])
    # u1 is assigned here but is not a member, so it is not counted
    p3 = make_project("p3", team=["u3"], tasks=[make_task("x1", assignees=["u1"], due=now)])
    return [p1, p2, p3]


class TestFlattenAssigned:
    def test_all_depths_ordered_by_due_date(self, user_projects):
        ids = [a.id for a in flatten_assigned("u1", user_projects)]
        assert ids == ["t1.1", "r1", "t1", "t2", "r2"]

    def test_provenance(self, user_projects):
        by_id = {a.id: a for a in flatten_assigned("u1", user_projects)}
        assert by_id["t1.1"].project_id == "p1"
        assert by_id["t1.1"].parent_id == "t1"
        assert by_id["t1.1"].depth == 1
        assert by_id["r1"].project_type == "Rulemaking"

    def test_unknown_user(self, user_projects):
        assert flatten_assigned("nobody", user_projects) == []


class TestUserTaskView:
    def test_buckets(self, user_projects, now):
        view = user_task_view("u1", user_projects, now)
        assert view.total == 5
        assert view.completed_count == 1
        assert view.open_count == 4
        assert view.completion_percentage == 20.0
        assert [a.id for a in view.overdue] == ["t1.1"]
        assert [a.id for a in view.due_today] == ["r1"]
        assert view.critical_projects == ("p1",)
        assert [a.id for a in view.open_tasks] == ["t1.1", "r1", "t1", "r2"]

    def test_overdue_task_due_earlier_today_is_in_both_buckets(self, make_project, make_task, now):
        project = make_project("p", team=["u1"], tasks=[
            make_task("t", assignees=["u1"], due=now - timedelta(hours=2)),
        ])
        view = user_task_view("u1", [project], now)
        assert [a.id for a in view.overdue] == ["t"]
        assert [a.id for a in view.due_today] == ["t"]

    def test_done_tasks_never_overdue_or_due_today(self, make_project, make_task, now):
        project = make_project("p", team=["u1"], tasks=[
            make_task("t", assignees=["u1"], status=TaskStatus.DONE, due=now - timedelta(hours=2)),
        ])
        view = user_task_view("u1", [project], now)
        assert view.overdue == ()
        assert view.due_today == ()

    def test_is_due_today_uses_nows_timezone(self, make_task):
        jakarta = timezone(timedelta(hours=7))
        now = datetime(2024, 6, 12, 23, 0, tzinfo=jakarta)
        # 2024-06-12 17:30 UTC is 2024-06-13 00:30 in Jakarta
        task = make_task("t", due=datetime(2024, 6, 12, 17, 30, tzinfo=timezone.utc))
        assert not is_due_today(task, now)
        assert is_due_today(task, now.astimezone(timezone.utc))

    def test_critical_projects_any_depth(self, make_project, make_task):
        deep = make_project("deep", tasks=[make_task("a", children=[make_task("b", children=[
            make_task("c", critical="stuck"),
        ])])])
        calm = make_project("calm", tasks=[make_task("a")])
        assert critical_project_ids([deep, calm]) == ["deep"]


class TestWorkload:
    def test_pace_counts_this_weeks_completions(self, make_project, make_task, now):
        # now is Wednesday 2024-06-12; the week starts Monday 2024-06-10
        project = make_project("p", team=["u1"], tasks=[
            make_task("mon", assignees=["u1"], status=TaskStatus.DONE,
                      done_date=datetime(2024, 6, 10, 0, 0, tzinfo=timezone.utc)),
            make_task("sun", assignees=["u1"], status=TaskStatus.DONE,
                      done_date=datetime(2024, 6, 9, 23, 59, tzinfo=timezone.utc)),
            make_task("nodate", assignees=["u1"], status=TaskStatus.DONE),
        ])
        load = workload(user_task_view("u1", [project], now), now)
        assert load.pace == 1
        assert load.score == 0
        assert load.label == "Low"

    def test_score_weights(self, make_project, make_task, now):
        project = make_project("p", team=["u1"], tasks=[
            make_task("over", assignees=["u1"], due=now - timedelta(days=1)),
            make_task("soon", assignees=["u1"], due=now + timedelta(days=2)),
            make_task("week", assignees=["u1"], due=now + timedelta(days=6)),
            make_task("later", assignees=["u1"], due=now + timedelta(days=30)),
            make_task("undated", assignees=["u1"]),
        ])
        load = workload(user_task_view("u1", [project], now), now)
        assert load.score == 5 + 4 + 3 + 1 + 1
        assert load.label == "High"

    @pytest.mark.parametrize("open_overdue,label", [(1, "Low"), (2, "Normal"), (3, "High"), (5, "Overloaded")])
    def test_labels(self, make_project, make_task, now, open_overdue, label):
        tasks = [make_task(f"t{i}", assignees=["u1"], due=now - timedelta(days=1)) for i in range(open_overdue)]
        project = make_project("p", team=["u1"], tasks=tasks)
        assert workload(user_task_view("u1", [project], now), now).label == label


class TestTeamWorkload:
    def test_every_assignee_counted(self, user_projects):
        loads = {m.user_id: m for m in team_workload(user_projects)}
        assert loads["u1"].total_tasks == 6
        assert loads["u1"].open_tasks == 5
        assert loads["u2"].total_tasks == 2
        assert loads["u2"].open_tasks == 2

    def test_busiest_first(self, user_projects):
        assert [m.user_id for m in team_workload(user_projects)] == ["u1", "u2"]
