"""Workflow engine - owns execution records and drives the node loop.

``execute_workflow`` persists a running execution record and returns its id
immediately; the node loop runs as a background asyncio task. Each run is
wrapped by a supervisor that enforces the workflow timeout by cancelling
the loop, so in-flight tool calls are interrupted rather than left running.

Every terminal write is conditional on the record still being ``running``,
so whichever of completion, timeout or cancel lands first wins.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from constants import INPUT_NODE_KEY, NODE_TYPE_AGENT_PROCESSOR, AGENT_PROCESSOR_TOOL_ID, PASSTHROUGH_NODE_TYPES
from core.errors import ExecutionNotFound, ExecutionTimeout, NodeExecutionError, WorkflowNotFound
from core.logging import get_logger
from models.database import WorkflowExecution
from models.workflow import WorkflowDefinition, WorkflowNode
from .mapper import DataMapper
from .models import (
    ExecutionStatus,
    InvocationContext,
    NodeResult,
    NodeStatus,
    TERMINAL_EXECUTION_STATUSES,
    to_json_safe,
)
from .planner import ExecutionPlanner

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from services.node_executor import NodeExecutor
    from services.tool_registry import ResolvedTool, ToolRegistry

logger = get_logger(__name__)


@dataclass
class _ActiveRun:
    """In-process handle on a live execution."""
    task: asyncio.Task
    done: asyncio.Event
    task_id: Optional[str] = None


class WorkflowEngine:
    """Runs workflows one node at a time in topological order."""

    def __init__(
        self,
        database: "Database",
        tool_registry: "ToolRegistry",
        node_executor: "NodeExecutor",
        settings: "Settings",
        planner: Optional[ExecutionPlanner] = None,
        mapper: Optional[DataMapper] = None,
    ):
        self.database = database
        self.tool_registry = tool_registry
        self.node_executor = node_executor
        self.settings = settings
        self.planner = planner or ExecutionPlanner()
        self.mapper = mapper or DataMapper()
        self._active: Dict[str, _ActiveRun] = {}

    # =========================================================================
    # EXECUTION ENTRY POINTS
    # =========================================================================

    async def execute_workflow(
        self,
        workflow_id: str,
        agent_id: Optional[str] = None,
        session_id: Optional[str] = None,
        task_id: Optional[str] = None,
        input_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Start a workflow run and return its execution id without waiting.

        Raises:
            WorkflowNotFound: if the workflow does not exist
        """
        workflow = await self.database.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)

        definition = WorkflowDefinition.model_validate(workflow.definition or {})
        input_data = input_data if input_data is not None else {}
        timeout_ms = definition.timeout_ms or self.settings.workflow_timeout_ms

        execution = await self.database.create_execution(WorkflowExecution(
            workflow_id=workflow_id,
            agent_id=agent_id,
            session_id=session_id,
            task_id=task_id,
            user_id=user_id,
            status=ExecutionStatus.RUNNING.value,
            node_results={},
            input_data=to_json_safe(input_data),
        ))
        execution_id = execution.execution_id

        logger.info("[Engine] Starting workflow execution", execution_id=execution_id,
                    workflow_id=workflow_id, node_count=len(definition.nodes),
                    timeout_ms=timeout_ms, task_id=task_id)

        base_context = {
            "execution_id": execution_id,
            "workflow_id": workflow_id,
            "agent_id": agent_id,
            "user_id": user_id,
            "session_id": session_id,
        }
        run = asyncio.create_task(
            self._supervise(definition, input_data, base_context, timeout_ms),
            name=f"workflow-execution-{execution_id}",
        )
        self._active[execution_id] = _ActiveRun(task=run, done=asyncio.Event(), task_id=task_id)
        run.add_done_callback(lambda finished: self._on_run_finished(execution_id, finished))
        return execution_id

    async def get_execution_status(self, execution_id: str) -> WorkflowExecution:
        """Get an execution record.

        Raises:
            ExecutionNotFound: if the id is unknown
        """
        execution = await self.database.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[WorkflowExecution]:
        return await self.database.list_executions(workflow_id, limit=limit)

    async def cancel_execution(self, execution_id: str) -> bool:
        """Mark a running execution cancelled and stop its node loop.

        Returns:
            False if the execution had already reached a terminal state
        """
        await self.get_execution_status(execution_id)

        cancelled = await self.database.finish_execution(
            execution_id, ExecutionStatus.CANCELLED.value, error_message="Execution cancelled"
        )
        active = self._active.get(execution_id)
        if active is not None and not active.task.done():
            active.task.cancel()

        logger.info("[Engine] Cancel requested", execution_id=execution_id, cancelled=cancelled)
        return cancelled

    async def cancel_task_executions(self, task_id: str) -> int:
        """Cancel every running execution started for a task."""
        count = 0
        for execution in await self.database.list_running_executions(task_id=task_id):
            if await self.cancel_execution(execution.execution_id):
                count += 1
        return count

    async def wait_for_completion(
        self,
        execution_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> WorkflowExecution:
        """Wait until an execution leaves ``running``.

        Live executions of this process are awaited through their completion
        event. Anything else (e.g. started before a restart) is polled from
        the database every ``poll_interval`` seconds.

        Raises:
            ExecutionNotFound: if the id is unknown
            ExecutionTimeout: if the wait exceeds ``timeout`` seconds
        """
        timeout = timeout if timeout is not None else self.settings.task_wait_timeout
        poll_interval = poll_interval if poll_interval is not None else self.settings.task_poll_interval

        active = self._active.get(execution_id)
        if active is not None:
            try:
                await asyncio.wait_for(active.done.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                raise ExecutionTimeout(execution_id, message="Workflow execution timeout")
            return await self.get_execution_status(execution_id)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            execution = await self.get_execution_status(execution_id)
            if execution.status in TERMINAL_EXECUTION_STATUSES:
                return execution
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ExecutionTimeout(execution_id, message="Workflow execution timeout")
            await asyncio.sleep(min(poll_interval, remaining))

    def is_active(self, execution_id: str) -> bool:
        return execution_id in self._active

    async def shutdown(self) -> None:
        """Cancel every live run and wait for the runs to record it."""
        runs = [active.task for active in self._active.values() if not active.task.done()]
        for run in runs:
            run.cancel()
        if runs:
            await asyncio.gather(*runs, return_exceptions=True)
            logger.info("[Engine] Cancelled live executions on shutdown", count=len(runs))

    # =========================================================================
    # BACKGROUND RUN
    # =========================================================================

    def _on_run_finished(self, execution_id: str, run: asyncio.Task) -> None:
        active = self._active.pop(execution_id, None)
        if active is not None:
            active.done.set()
        if not run.cancelled() and run.exception() is not None:
            logger.error("[Engine] Execution supervisor crashed", execution_id=execution_id,
                         error=str(run.exception()))

    async def _supervise(self, definition: WorkflowDefinition, input_data: Dict[str, Any],
                         base_context: Dict[str, Any], timeout_ms: int) -> None:
        execution_id = base_context["execution_id"]
        timeout = timeout_ms / 1000
        deadline = asyncio.get_running_loop().time() + timeout

        try:
            await asyncio.wait_for(
                self._run_nodes(definition, input_data, base_context, deadline),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            message = f"Workflow execution timed out after {timeout_ms}ms"
            logger.error("[Engine] Execution timed out", execution_id=execution_id, timeout_ms=timeout_ms)
            await self.database.finish_execution(
                execution_id, ExecutionStatus.FAILED.value, error_message=message
            )
        except asyncio.CancelledError:
            await self.database.finish_execution(
                execution_id, ExecutionStatus.CANCELLED.value, error_message="Execution cancelled"
            )
            raise

    async def _run_nodes(self, definition: WorkflowDefinition, input_data: Dict[str, Any],
                         base_context: Dict[str, Any], deadline: float) -> None:
        execution_id = base_context["execution_id"]
        workflow_id = base_context["workflow_id"]
        start_time = time.monotonic()

        try:
            order = self.planner.plan(definition.nodes, definition.edges)
            nodes_by_id = {node.id: node for node in definition.nodes}
            node_outputs: Dict[str, Any] = {INPUT_NODE_KEY: input_data}
            node_results: Dict[str, Any] = {}

            for index, node_id in enumerate(order):
                node = nodes_by_id[node_id]
                if not await self.database.update_execution(execution_id, current_node=node_id):
                    logger.info("[Engine] Execution no longer running, stopping",
                                execution_id=execution_id, node_id=node_id)
                    return

                inputs = self.mapper.map_inputs(node_id, definition.edges, node_outputs, node.config)
                if index == 0 and not inputs and not definition.incoming_edges(node_id):
                    inputs = input_data

                context = InvocationContext(node_id=node_id, deadline=deadline, **base_context)
                result = await self._execute_node(node, inputs, context)

                node_results[node_id] = result.to_dict()
                node_outputs[node_id] = result.output
                await self.database.update_execution(execution_id, node_results=to_json_safe(node_results))

                if result.failed:
                    if not node.continue_on_error:
                        raise NodeExecutionError(node_id, result.error or "unknown error")
                    logger.warning("[Engine] Node failed, continuing", execution_id=execution_id,
                                   node_id=node_id, error=result.error)

            final_output = self.mapper.get_final_output(order, node_outputs, definition.output_mapping)
            completed = await self.database.finish_execution(
                execution_id, ExecutionStatus.COMPLETED.value, output_data=to_json_safe(final_output)
            )
            if completed:
                await self.database.record_workflow_execution(workflow_id)
            logger.info("[Engine] Workflow execution completed", execution_id=execution_id,
                        workflow_id=workflow_id, nodes=len(order),
                        duration_ms=int((time.monotonic() - start_time) * 1000))

        except Exception as e:
            logger.error("[Engine] Workflow execution failed", execution_id=execution_id,
                         workflow_id=workflow_id, error=str(e))
            await self.database.finish_execution(
                execution_id, ExecutionStatus.FAILED.value, error_message=str(e)
            )

    async def _execute_node(self, node: WorkflowNode, inputs: Dict[str, Any],
                            context: InvocationContext) -> NodeResult:
        start_time = time.monotonic()
        logger.debug("[Engine] Executing node", execution_id=context.execution_id,
                     node_id=node.id, node_type=node.type)
        try:
            if node.type in PASSTHROUGH_NODE_TYPES:
                output = dict(inputs)
            else:
                tool = await self._resolve_node_tool(node)
                output = await self.node_executor.invoke(tool, inputs, context)
            status = NodeStatus.SUCCESS
            error = None
        except Exception as e:
            output = None
            status = NodeStatus.ERROR
            error = str(e) or type(e).__name__

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if status == NodeStatus.ERROR:
            logger.error("[Engine] Node failed", execution_id=context.execution_id,
                         node_id=node.id, error=error, duration_ms=duration_ms)
        else:
            logger.info("[Engine] Node completed", execution_id=context.execution_id,
                        node_id=node.id, duration_ms=duration_ms)
        return NodeResult(node_id=node.id, status=status, output=output, error=error,
                          duration_ms=duration_ms)

    async def _resolve_node_tool(self, node: WorkflowNode) -> "ResolvedTool":
        tool_id = node.tool_id
        if not tool_id:
            if node.type != NODE_TYPE_AGENT_PROCESSOR:
                raise ValueError(f"Node {node.id} has no toolId")
            tool_id = AGENT_PROCESSOR_TOOL_ID

        tool = await self.tool_registry.resolve(tool_id)
        if tool is None:
            raise LookupError(f"Tool {tool_id} not found")
        return tool
