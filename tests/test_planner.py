"""Tests for ExecutionPlanner topological ordering."""

import pytest

from core.errors import CycleDetected
from models.workflow import WorkflowEdge, WorkflowNode
from services.execution import ExecutionPlanner


def _nodes(*ids):
    return [WorkflowNode(id=node_id, toolId="echo") for node_id in ids]


def _edges(*pairs):
    return [WorkflowEdge(source=source, target=target) for source, target in pairs]


@pytest.fixture
def planner():
    return ExecutionPlanner()


class TestPlan:

    def test_linear_chain(self, planner):
        order = planner.plan(_nodes("A", "B", "C"), _edges(("A", "B"), ("B", "C")))
        assert order == ["A", "B", "C"]

    def test_linear_chain_declared_out_of_order(self, planner):
        order = planner.plan(_nodes("C", "A", "B"), _edges(("A", "B"), ("B", "C")))
        assert order == ["A", "B", "C"]

    def test_diamond(self, planner):
        order = planner.plan(
            _nodes("A", "B", "C", "D"),
            _edges(("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")),
        )
        assert order[0] == "A"
        assert order[-1] == "D"
        assert order.index("A") < order.index("B")
        assert order.index("A") < order.index("C")
        assert order.index("B") < order.index("D")
        assert order.index("C") < order.index("D")

    def test_independent_nodes_keep_declaration_order(self, planner):
        assert planner.plan(_nodes("x", "y", "z"), []) == ["x", "y", "z"]

    def test_empty(self, planner):
        assert planner.plan([], []) == []

    def test_cycle_raises(self, planner):
        with pytest.raises(CycleDetected) as exc_info:
            planner.plan(_nodes("A", "B", "C"), _edges(("A", "B"), ("B", "C"), ("C", "A")))
        assert set(exc_info.value.cycle) == {"A", "B", "C"}

    def test_cycle_behind_valid_prefix(self, planner):
        with pytest.raises(CycleDetected) as exc_info:
            planner.plan(_nodes("S", "A", "B"), _edges(("S", "A"), ("A", "B"), ("B", "A")))
        assert "S" not in exc_info.value.cycle

    def test_edge_to_unknown_node_is_ignored(self, planner):
        order = planner.plan(_nodes("A", "B"), _edges(("A", "B"), ("B", "ghost")))
        assert order == ["A", "B"]
