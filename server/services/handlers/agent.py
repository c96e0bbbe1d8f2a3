"""Agent processor handler - workflow nodes handled by the agent runtime."""

from typing import Any, Dict, TYPE_CHECKING

from services.execution.models import InvocationContext

if TYPE_CHECKING:
    from services.agent_runtime import AgentRuntime


async def handle_agent_processor(
    inputs: Dict[str, Any],
    context: InvocationContext,
    agent_runtime: "AgentRuntime",
) -> Any:
    """Delegate an agent_processor node to the agent runtime.

    Args:
        inputs: Mapped node inputs
        context: Invocation context
        agent_runtime: Runtime that performs the processing

    Returns:
        Whatever the runtime returns for the node
    """
    return await agent_runtime.process_within_workflow(inputs, context)
