"""Tests for DataMapper and get_nested_value."""

import pytest

from models.workflow import WorkflowEdge
from services.execution import DataMapper, get_nested_value


@pytest.fixture
def mapper():
    return DataMapper()


class TestGetNestedValue:

    def test_nested_dict(self):
        data = {"user": {"profile": {"name": "John"}}}
        assert get_nested_value(data, "user.profile.name") == "John"

    def test_list_index(self):
        data = {"users": [{"name": "Jane"}]}
        assert get_nested_value(data, "users.0.name") == "Jane"

    def test_missing_path_returns_default(self):
        data = {"user": {"profile": {}}}
        assert get_nested_value(data, "user.profile.name") is None
        assert get_nested_value(data, "user.settings.theme", "dark") == "dark"

    def test_never_raises_on_odd_shapes(self):
        assert get_nested_value(None, "a.b") is None
        assert get_nested_value("text", "length") is None
        assert get_nested_value({"items": [1]}, "items.5") is None
        assert get_nested_value({"items": [1]}, "items.first") is None
        assert get_nested_value({"a": 1}, "") is None

    def test_falsy_values_are_returned(self):
        data = {"count": 0, "flag": False, "empty": None}
        assert get_nested_value(data, "count", "x") == 0
        assert get_nested_value(data, "flag", "x") is False
        assert get_nested_value(data, "empty", "x") is None


class TestMapInputs:

    def test_single_mapping(self, mapper):
        edges = [WorkflowEdge(source="node1", target="node2", mapping={"result": "input"})]
        inputs = mapper.map_inputs("node2", edges, {"node1": {"result": "v"}})
        assert inputs == {"input": "v"}

    def test_nested_mapping_path(self, mapper):
        edges = [WorkflowEdge(source="fetch", target="parse", mapping={"body.items.0": "first"})]
        inputs = mapper.map_inputs("parse", edges, {"fetch": {"body": {"items": ["a", "b"]}}})
        assert inputs == {"first": "a"}

    def test_unresolved_mapping_is_skipped(self, mapper):
        edges = [WorkflowEdge(source="a", target="b", mapping={"missing": "x", "present": "y"})]
        inputs = mapper.map_inputs("b", edges, {"a": {"present": 1}})
        assert inputs == {"y": 1}

    def test_multiple_edges_merge(self, mapper):
        edges = [
            WorkflowEdge(source="a", target="c", mapping={"value": "left"}),
            WorkflowEdge(source="b", target="c", mapping={"value": "right"}),
        ]
        outputs = {"a": {"value": 1}, "b": {"value": 2}}
        assert mapper.map_inputs("c", edges, outputs) == {"left": 1, "right": 2}

    def test_edge_without_mapping_passes_whole_output(self, mapper):
        edges = [WorkflowEdge(source="src", target="dst")]
        output = {"a": 1, "b": [2]}
        assert mapper.map_inputs("dst", edges, {"src": output}) == {"src": output}

    def test_handles_map_single_field(self, mapper):
        edges = [WorkflowEdge(source="a", target="b", sourceHandle="data.id", targetHandle="id")]
        assert mapper.map_inputs("b", edges, {"a": {"data": {"id": 7}}}) == {"id": 7}

    def test_config_wins_over_mapping(self, mapper):
        edges = [WorkflowEdge(source="node1", target="node2", mapping={"result": "param1"})]
        inputs = mapper.map_inputs(
            "node2", edges, {"node1": {"result": "mapped"}}, {"param1": "override", "param2": 3}
        )
        assert inputs == {"param1": "override", "param2": 3}

    def test_edges_to_other_nodes_are_ignored(self, mapper):
        edges = [WorkflowEdge(source="a", target="other", mapping={"x": "x"})]
        assert mapper.map_inputs("b", edges, {"a": {"x": 1}}) == {}

    def test_source_without_output_is_skipped(self, mapper):
        edges = [WorkflowEdge(source="a", target="b")]
        assert mapper.map_inputs("b", edges, {"a": None}) == {}

    def test_falsy_source_output_is_passed(self, mapper):
        edges = [WorkflowEdge(source="a", target="b")]
        assert mapper.map_inputs("b", edges, {"a": 0}) == {"a": 0}


class TestGetFinalOutput:

    def test_defaults_to_last_node_output(self, mapper):
        outputs = {"a": {"x": 1}, "b": {"y": 2}}
        assert mapper.get_final_output(["a", "b"], outputs) == {"y": 2}

    def test_output_mapping_extracts_nested_field(self, mapper):
        outputs = {"node1": {"user": {"profile": {"name": "John"}}}}
        result = mapper.get_final_output(["node1"], outputs, {"userName": "node1.user.profile.name"})
        assert result == {"userName": "John"}

    def test_output_mapping_whole_node(self, mapper):
        outputs = {"a": {"x": 1}, "b": {"y": 2}}
        assert mapper.get_final_output(["a", "b"], outputs, {"first": "a"}) == {"first": {"x": 1}}

    def test_unresolved_output_mapping_is_left_out(self, mapper):
        outputs = {"a": {"x": 1}}
        result = mapper.get_final_output(["a"], outputs, {"x": "a.x", "y": "a.y", "z": "ghost.z"})
        assert result == {"x": 1}

    def test_empty_order(self, mapper):
        assert mapper.get_final_output([], {}) is None
