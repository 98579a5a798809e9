"""Tests for tasktree.tasks.edit: copy-on-write subtree edits."""

from __future__ import annotations

from dataclasses import replace

import pytest

from tasktree.tasks.edit import TaskNotFound, add_task, delete_task, replace_task
from tasktree.tasks.model import TaskStatus
from tasktree.tasks.traverse import find_task, iter_ids


class TestAddTask:
    def test_add_root(self, scenario_project, make_task):
        roots = add_task(scenario_project.tasks, make_task("C"))
        assert [t.id for t in roots] == ["A", "B", "C"]
        assert [t.id for t in scenario_project.tasks] == ["A", "B"]

    def test_add_nested(self, scenario_project, make_task):
        roots = add_task(scenario_project.tasks, make_task("A2a"), parent_id="A2")
        assert list(iter_ids(roots)) == ["A", "A1", "A2", "A2a", "B"]
        # the original tree is untouched
        assert find_task(scenario_project.tasks, "A2").children == []

    def test_unchanged_branches_are_shared(self, scenario_project, make_task):
        roots = add_task(scenario_project.tasks, make_task("A1a"), parent_id="A1")
        assert roots[1] is scenario_project.tasks[1]
        assert roots[0] is not scenario_project.tasks[0]
        assert roots[0].children[1] is scenario_project.tasks[0].children[1]

    def test_missing_parent(self, scenario_project, make_task):
        with pytest.raises(TaskNotFound):
            add_task(scenario_project.tasks, make_task("X"), parent_id="nope")

    def test_duplicate_id_rejected(self, scenario_project, make_task):
        with pytest.raises(ValueError, match="already exists"):
            add_task(scenario_project.tasks, make_task("B"))

    def test_duplicate_inside_new_subtree_rejected(self, scenario_project, make_task):
        new = make_task("C", children=[make_task("A1")])
        with pytest.raises(ValueError):
            add_task(scenario_project.tasks, new, parent_id="B")


class TestReplaceTask:
    def test_replace_keeps_children(self, scenario_project):
        a = find_task(scenario_project.tasks, "A")
        updated = replace(a, title="Draft regulation v2", children=[])
        roots = replace_task(scenario_project.tasks, updated)
        assert roots[0].title == "Draft regulation v2"
        assert [c.id for c in roots[0].children] == ["A1", "A2"]

    def test_replace_nested(self, scenario_project):
        a2 = find_task(scenario_project.tasks, "A2")
        roots = replace_task(scenario_project.tasks, replace(a2, status=TaskStatus.IN_PROGRESS))
        assert find_task(roots, "A2").status == TaskStatus.IN_PROGRESS
        assert find_task(scenario_project.tasks, "A2").status == TaskStatus.BLOCKED

    def test_replace_missing(self, scenario_project, make_task):
        with pytest.raises(TaskNotFound):
            replace_task(scenario_project.tasks, make_task("ghost"))


class TestDeleteTask:
    def test_delete_subtree(self, scenario_project):
        roots = delete_task(scenario_project.tasks, "A")
        assert list(iter_ids(roots)) == ["B"]

    def test_delete_leaf(self, scenario_project):
        roots = delete_task(scenario_project.tasks, "A1")
        assert list(iter_ids(roots)) == ["A", "A2", "B"]
        assert list(iter_ids(scenario_project.tasks)) == ["A", "A1", "A2", "B"]

    def test_delete_deep(self, make_chain):
        roots = delete_task(make_chain(50), "d25")
        assert list(iter_ids(roots)) == [f"d{i}" for i in range(25)]

    def test_delete_missing(self, scenario_project):
        with pytest.raises(TaskNotFound):
            delete_task(scenario_project.tasks, "ghost")
