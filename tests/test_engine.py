"""Tests for WorkflowEngine execution, timeout and cancellation."""

import asyncio

import pytest

from core.errors import ExecutionNotFound, ExecutionTimeout, WorkflowNotFound
from services.execution import ExecutionStatus

from conftest import chain_definition, tool_node


class SlowTool:
    """Function tool that blocks until cancelled or ``seconds`` pass."""

    def __init__(self, seconds: float = 5.0):
        self.seconds = seconds
        self.started = asyncio.Event()
        self.finished = False

    async def __call__(self, inputs, context):
        self.started.set()
        await asyncio.sleep(self.seconds)
        self.finished = True
        return {"done": True}


async def _create(workflow_service, definition, name="wf"):
    return await workflow_service.create_workflow(definition, owner_id="agent-1", owner_type="agent", name=name)


async def _run(workflow_service, workflow_id, **kwargs):
    execution_id = await workflow_service.execute_workflow(workflow_id, **kwargs)
    return await workflow_service.wait_for_completion(execution_id, timeout=5)


class TestEndToEnd:

    async def test_fetch_parse_save(self, workflow_service, register_tool):
        fetch = register_tool("fetch", output={"status": 200, "body": {"text": "a,b"}})
        parse = register_tool("parse", output={"parsed": ["a", "b"]})
        save = register_tool("save", output={"saved": 2})

        workflow = await _create(workflow_service, {
            "startNodeId": "fetch",
            "endNodeId": "save",
            "nodes": [tool_node("fetch"), tool_node("parse"), tool_node("save")],
            "edges": [
                {"source": "fetch", "target": "parse", "mapping": {"body": "input"}},
                {"source": "parse", "target": "save", "mapping": {"parsed": "data"}},
            ],
        })

        execution = await _run(workflow_service, workflow.workflow_id, input_data={"url": "http://x"})

        assert execution.status == ExecutionStatus.COMPLETED.value
        assert fetch.last_inputs == {"url": "http://x"}
        assert parse.last_inputs == {"input": {"text": "a,b"}}
        assert save.last_inputs == {"data": ["a", "b"]}
        assert execution.output_data == {"saved": 2}
        assert execution.current_node == "save"
        assert execution.completed_at is not None
        assert set(execution.node_results) == {"fetch", "parse", "save"}
        assert execution.node_results["parse"]["status"] == "success"
        assert execution.node_results["parse"]["output"] == {"parsed": ["a", "b"]}

    async def test_output_mapping(self, workflow_service, register_tool):
        register_tool("lookup", output={"user": {"profile": {"name": "John"}}})
        register_tool("noop", output={"ok": True})
        definition = chain_definition("lookup", "noop")
        definition["outputMapping"] = {"userName": "lookup.user.profile.name"}
        workflow = await _create(workflow_service, definition)

        execution = await _run(workflow_service, workflow.workflow_id)

        assert execution.output_data == {"userName": "John"}

    async def test_execution_is_counted(self, workflow_service, register_tool, database):
        register_tool("one", output={"x": 1})
        workflow = await _create(workflow_service, chain_definition("one"))

        await _run(workflow_service, workflow.workflow_id)
        await _run(workflow_service, workflow.workflow_id)

        stored = await database.get_workflow(workflow.workflow_id)
        assert stored.execution_count == 2
        assert stored.last_executed_at is not None

    async def test_passthrough_and_agent_processor_nodes(self, workflow_service):
        workflow = await _create(workflow_service, {
            "startNodeId": "in",
            "endNodeId": "out",
            "nodes": [
                {"id": "in", "type": "input"},
                {"id": "think", "type": "agent_processor"},
                {"id": "out", "type": "output"},
            ],
            "edges": [
                {"source": "in", "target": "think"},
                {"source": "think", "target": "out", "mapping": {"result": "answer"}},
            ],
        })

        execution = await _run(workflow_service, workflow.workflow_id, input_data={"question": "?"})

        assert execution.status == ExecutionStatus.COMPLETED.value
        assert execution.node_results["in"]["output"] == {"question": "?"}
        assert execution.output_data == {"answer": "Agent processor executed"}

    async def test_builtin_echo(self, workflow_service):
        workflow = await _create(workflow_service, {
            "nodes": [tool_node("e", "echo", greeting="hi")],
        })
        execution = await _run(workflow_service, workflow.workflow_id)
        assert execution.output_data == {"greeting": "hi"}


class TestNodeErrors:

    async def test_node_error_fails_execution(self, workflow_service, register_tool):
        register_tool("a", error="boom")
        b = register_tool("b", output={})
        workflow = await _create(workflow_service, chain_definition("a", "b"))

        execution = await _run(workflow_service, workflow.workflow_id)

        assert execution.status == ExecutionStatus.FAILED.value
        assert execution.error_message == "Node a failed: boom"
        assert execution.node_results["a"]["status"] == "error"
        assert execution.node_results["a"]["error"] == "boom"
        assert b.calls == []

    async def test_continue_on_error(self, workflow_service, register_tool):
        register_tool("a", error="boom")
        b = register_tool("b", output={"recovered": True})
        definition = chain_definition("a", "b")
        definition["nodes"][0]["config"] = {"continueOnError": True}
        workflow = await _create(workflow_service, definition)

        execution = await _run(workflow_service, workflow.workflow_id)

        assert execution.status == ExecutionStatus.COMPLETED.value
        assert execution.node_results["a"]["status"] == "error"
        assert execution.output_data == {"recovered": True}
        # The failed node contributes no output to its edge
        assert b.last_inputs == {}

    async def test_unresolvable_tool_at_run_time(self, workflow_service, register_tool, tool_registry):
        register_tool("temp", output={})
        workflow = await _create(workflow_service, chain_definition("temp"))
        tool_registry.unregister_function("temp")

        execution = await _run(workflow_service, workflow.workflow_id)

        assert execution.status == ExecutionStatus.FAILED.value
        assert "Tool temp not found" in execution.error_message


class TestTimeoutAndCancel:

    async def test_timeout_interrupts_running_node(self, workflow_service, tool_registry):
        slow = SlowTool(seconds=5)
        tool_registry.register_function("slow", slow)
        definition = chain_definition("slow")
        definition["timeoutMs"] = 100
        workflow = await _create(workflow_service, definition)

        execution = await _run(workflow_service, workflow.workflow_id)

        assert execution.status == ExecutionStatus.FAILED.value
        assert execution.error_message == "Workflow execution timed out after 100ms"
        assert slow.started.is_set()
        assert not slow.finished

    async def test_cancel_execution(self, workflow_service, engine, tool_registry):
        slow = SlowTool(seconds=5)
        tool_registry.register_function("slow", slow)
        workflow = await _create(workflow_service, chain_definition("slow"))

        execution_id = await workflow_service.execute_workflow(workflow.workflow_id)
        await asyncio.wait_for(slow.started.wait(), timeout=2)

        assert await workflow_service.cancel_execution(execution_id) is True
        execution = await workflow_service.wait_for_completion(execution_id, timeout=2)

        assert execution.status == ExecutionStatus.CANCELLED.value
        assert not slow.finished
        assert not engine.is_active(execution_id)
        # Already terminal
        assert await workflow_service.cancel_execution(execution_id) is False

    async def test_cancel_completed_execution_is_noop(self, workflow_service, register_tool):
        register_tool("quick", output={"v": 1})
        workflow = await _create(workflow_service, chain_definition("quick"))
        execution = await _run(workflow_service, workflow.workflow_id)

        assert await workflow_service.cancel_execution(execution.execution_id) is False
        stored = await workflow_service.get_execution_status(execution.execution_id)
        assert stored.status == ExecutionStatus.COMPLETED.value

    async def test_cancel_task_executions(self, workflow_service, engine, tool_registry):
        slow = SlowTool(seconds=5)
        tool_registry.register_function("slow", slow)
        workflow = await _create(workflow_service, chain_definition("slow"))
        execution_id = await workflow_service.execute_workflow(workflow.workflow_id, task_id="task-9")
        await asyncio.wait_for(slow.started.wait(), timeout=2)

        assert await engine.cancel_task_executions("task-9") == 1
        execution = await workflow_service.wait_for_completion(execution_id, timeout=2)
        assert execution.status == ExecutionStatus.CANCELLED.value

    async def test_wait_times_out(self, workflow_service, tool_registry):
        tool_registry.register_function("slow", SlowTool(seconds=5))
        workflow = await _create(workflow_service, chain_definition("slow"))
        execution_id = await workflow_service.execute_workflow(workflow.workflow_id)

        with pytest.raises(ExecutionTimeout):
            await workflow_service.wait_for_completion(execution_id, timeout=0.1)

    async def test_wait_polls_records_not_owned_by_engine(self, engine, database, workflow_service, register_tool):
        register_tool("quick", output={"v": 1})
        workflow = await _create(workflow_service, chain_definition("quick"))
        execution = await _run(workflow_service, workflow.workflow_id)

        assert not engine.is_active(execution.execution_id)
        polled = await engine.wait_for_completion(execution.execution_id, timeout=1, poll_interval=0.01)
        assert polled.status == ExecutionStatus.COMPLETED.value


class TestLookups:

    async def test_execute_unknown_workflow(self, workflow_service):
        with pytest.raises(WorkflowNotFound):
            await workflow_service.execute_workflow("missing")

    async def test_unknown_execution(self, workflow_service):
        with pytest.raises(ExecutionNotFound):
            await workflow_service.get_execution_status("missing")

    async def test_list_executions(self, workflow_service, register_tool):
        register_tool("quick", output={})
        workflow = await _create(workflow_service, chain_definition("quick"))
        first = await _run(workflow_service, workflow.workflow_id)
        second = await _run(workflow_service, workflow.workflow_id)

        executions = await workflow_service.list_executions(workflow.workflow_id)
        assert {e.execution_id for e in executions} == {first.execution_id, second.execution_id}
