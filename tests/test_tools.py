"""Tests for built-in tools, the tool registry and ToolNodeExecutor."""

from datetime import datetime, timezone

import pytest

from models.task import TaskExecutionResult
from services.execution import InvocationContext, NodeResult, NodeStatus, to_json_safe
from services.handlers import tool_current_time, tool_echo, tool_timer
from services.tool_registry import AGENT_PROCESSOR_TOOL, ResolvedTool


@pytest.fixture
def context():
    return InvocationContext(execution_id="exec-1", workflow_id="wf-1", node_id="n1")


class TestBuiltinTools:

    async def test_echo(self, context):
        assert await tool_echo({"a": 1}, context) == {"a": 1}

    async def test_current_time(self, context):
        result = await tool_current_time({"timezone": "Europe/Oslo"}, context)
        assert result["timezone"] == "Europe/Oslo"
        assert result["timestamp"].endswith(("+01:00", "+02:00"))
        assert isinstance(result["unix"], int)

    async def test_current_time_unknown_timezone(self, context):
        with pytest.raises(ValueError):
            await tool_current_time({"timezone": "Mars/Olympus"}, context)

    async def test_timer(self, context):
        result = await tool_timer({"duration": 0.01}, context)
        assert result["unit"] == "seconds"
        assert result["message"] == "Timer completed after 0.01 seconds"

    async def test_timer_rejects_unknown_unit(self, context):
        with pytest.raises(ValueError):
            await tool_timer({"duration": 1, "unit": "fortnights"}, context)


class TestToolRegistry:

    async def test_builtins_are_registered(self, tool_registry):
        ids = {tool.tool_id for tool in tool_registry.list_static_tools()}
        assert {"echo", "current_time", "timer"} <= ids

    async def test_resolve_agent_processor(self, tool_registry):
        assert await tool_registry.resolve("agent_processor") is AGENT_PROCESSOR_TOOL

    async def test_resolve_unknown(self, tool_registry):
        assert await tool_registry.resolve("nope") is None
        assert await tool_registry.resolve(None) is None

    async def test_register_and_unregister_function(self, tool_registry):
        def double(inputs, context):
            """Doubles x."""
            return {"x": inputs["x"] * 2}

        tool = tool_registry.register_function("double", double)
        assert tool.description == "Doubles x."
        assert (await tool_registry.resolve("double")).func is double
        assert tool_registry.unregister_function("double") is True
        assert await tool_registry.resolve("double") is None

    def test_register_rejects_non_callable(self, tool_registry):
        with pytest.raises(TypeError):
            tool_registry.register_function("bad", "not callable")


class TestToolNodeExecutor:

    async def test_sync_function_tool(self, node_executor, context):
        tool = ResolvedTool(tool_id="add", name="Add", kind="function",
                            func=lambda inputs, ctx: inputs["a"] + inputs["b"])
        assert await node_executor.invoke(tool, {"a": 2, "b": 3}, context) == 5

    async def test_agent_processor(self, node_executor, context):
        result = await node_executor.invoke(AGENT_PROCESSOR_TOOL, {"text": "hi"}, context)
        assert result == {"result": "Agent processor executed", "processed": True}

    async def test_unsupported_kind(self, node_executor, context):
        tool = ResolvedTool(tool_id="x", name="X", kind="carrier_pigeon")
        with pytest.raises(ValueError):
            await node_executor.invoke(tool, {}, context)


class TestResultSerialization:

    def test_to_json_safe(self):
        value = {
            "when": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "status": NodeStatus.SUCCESS,
            "ratio": float("nan"),
            "ids": (1, 2),
            "handle": object(),
            "items": [object(), "ok"],
        }
        assert to_json_safe(value) == {
            "when": "2024-01-01T00:00:00+00:00",
            "status": "success",
            "ratio": None,
            "ids": [1, 2],
            "items": [None, "ok"],
        }
        assert to_json_safe(object()) is None

    def test_node_result_to_dict(self):
        result = NodeResult(node_id="n1", status=NodeStatus.ERROR, error="boom", duration_ms=3)
        assert result.failed
        assert result.to_dict() == {"nodeId": "n1", "status": "error", "durationMs": 3, "error": "boom"}

    def test_task_execution_result_to_dict(self):
        result = TaskExecutionResult(task_id="t1", status="completed", result_content={"a": 1},
                                     summary="done", duration_ms=12)
        assert result.success
        assert result.to_dict() == {
            "taskId": "t1",
            "status": "completed",
            "durationMs": 12,
            "resultContent": {"a": 1},
            "summary": "done",
        }
