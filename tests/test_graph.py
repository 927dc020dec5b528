"""
Tests for the task graph — validation, closure, and topological order.
"""

import pytest

from buildplane.core import errors
from buildplane.core.engine.graph import TaskGraph
from buildplane.core.models import Task


def _graph(*tasks: Task) -> TaskGraph:
    graph = TaskGraph()
    for task in tasks:
        graph.add(task)
    return graph


class TestRegistration:
    def test_add_and_lookup(self):
        graph = _graph(Task(name="a"), Task(name="b"))
        assert "a" in graph
        assert len(graph) == 2
        assert graph.names() == ["a", "b"]
        assert graph.get("missing") is None

    def test_duplicate_rejected(self):
        graph = _graph(Task(name="a"))
        with pytest.raises(errors.TaskGraphError, match="Duplicate"):
            graph.add(Task(name="a"))

    def test_require_unknown(self):
        with pytest.raises(errors.TaskGraphError, match="Unknown task 'x'"):
            TaskGraph().require("x")


class TestValidate:
    def test_unknown_reference(self):
        graph = _graph(Task(name="a", depends_on=["ghost"]))
        with pytest.raises(errors.TaskGraphError, match="ghost"):
            graph.validate()

    def test_unknown_finalizer(self):
        graph = _graph(Task(name="a", finalized_by=["ghost"]))
        with pytest.raises(errors.TaskGraphError, match="ghost"):
            graph.validate()

    def test_cycle(self):
        graph = _graph(
            Task(name="a", depends_on=["c"]),
            Task(name="b", depends_on=["a"]),
            Task(name="c", depends_on=["b"]),
        )
        with pytest.raises(errors.TaskGraphError, match="cycle"):
            graph.validate()

    def test_finalizer_cycle(self):
        # b finalizes a, but a waits on b
        graph = _graph(
            Task(name="a", depends_on=["b"], finalized_by=["b"]),
            Task(name="b"),
        )
        with pytest.raises(errors.TaskGraphError, match="cycle"):
            graph.validate()

    def test_valid(self):
        _graph(Task(name="a"), Task(name="b", depends_on=["a"])).validate()


class TestResolve:
    def test_dependencies_first(self):
        graph = _graph(
            Task(name="check", depends_on=["test", "lint"]),
            Task(name="test", depends_on=["compile"]),
            Task(name="lint"),
            Task(name="compile"),
        )
        order = [t.name for t in graph.resolve(["check"])]
        assert order.index("compile") < order.index("test") < order.index("check")
        assert order.index("lint") < order.index("check")
        assert order[-1] == "check"

    def test_ties_break_on_registration_order(self):
        graph = _graph(Task(name="z"), Task(name="a"), Task(name="all", depends_on=["a", "z"]))
        assert [t.name for t in graph.resolve(["all"])] == ["z", "a", "all"]

    def test_only_closure_is_planned(self):
        graph = _graph(Task(name="a"), Task(name="b"), Task(name="c", depends_on=["a"]))
        assert [t.name for t in graph.resolve(["c"])] == ["a", "c"]

    def test_finalizer_pulled_in_after(self):
        graph = _graph(
            Task(name="test"),
            Task(name="report", depends_on=["test"], finalized_by=["merge"]),
            Task(name="merge", depends_on=["test"]),
        )
        order = [t.name for t in graph.resolve(["report"])]
        assert order == ["test", "report", "merge"]

    def test_finalizer_dependencies_included(self):
        graph = _graph(
            Task(name="other-test"),
            Task(name="report", finalized_by=["merge"]),
            Task(name="merge", depends_on=["other-test"]),
        )
        assert set(t.name for t in graph.resolve(["report"])) == {"report", "merge", "other-test"}

    def test_shared_dependency_planned_once(self):
        graph = _graph(
            Task(name="test"),
            Task(name="a", depends_on=["test"]),
            Task(name="b", depends_on=["test"]),
        )
        order = [t.name for t in graph.resolve(["a", "b"])]
        assert order.count("test") == 1

    def test_unknown_target(self):
        with pytest.raises(errors.TaskGraphError):
            _graph(Task(name="a")).resolve(["nope"])

    def test_predecessors_include_finalized(self):
        graph = _graph(
            Task(name="test"),
            Task(name="report", finalized_by=["merge"]),
            Task(name="merge", depends_on=["test"]),
        )
        members = graph.closure(["report"])
        assert graph.predecessors("merge", members) == {"test", "report"}
