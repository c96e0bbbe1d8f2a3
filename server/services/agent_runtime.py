"""Agent runtime seam.

The runtime that actually performs "single"/"sequential" task work lives
outside this service. The coordinator and the agent_processor tool only
talk to it through the AgentRuntime protocol.
"""

from typing import Any, Dict, Protocol, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from models.database import Task
    from services.execution.models import InvocationContext

logger = get_logger(__name__)


class AgentRuntime(Protocol):

    async def dispatch_single_task(self, task: "Task") -> Any:
        """Hand a single/sequential task to the agent and return its result."""
        ...

    async def process_within_workflow(self, inputs: Dict[str, Any],
                                      context: "InvocationContext") -> Any:
        """Run an agent_processor node."""
        ...


class QueuedAgentRuntime:
    """Default runtime: acknowledges work for an external agent loop.

    Agents pull their next unit of work via
    TaskCoordinator.get_next_executable_task, so dispatch here only records
    that the task was handed over.
    """

    async def dispatch_single_task(self, task: "Task") -> Dict[str, Any]:
        logger.info("[AgentRuntime] Task handed to agent", task_id=task.task_id,
                    agent_id=task.agent_id, mode=task.execution_mode)
        return {
            "executedByAgent": True,
            "taskId": task.task_id,
            "mode": task.execution_mode,
        }

    async def process_within_workflow(self, inputs: Dict[str, Any],
                                      context: "InvocationContext") -> Dict[str, Any]:
        logger.info("[AgentRuntime] Agent processor node", node_id=context.node_id,
                    execution_id=context.execution_id, input_keys=list(inputs.keys()))
        return {"result": "Agent processor executed", "processed": True}
