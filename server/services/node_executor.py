"""Node Executor - single tool invocation with handler dispatch.

Uses a registry pattern keyed by tool kind for clean dispatch without
if-else chains.
"""

import inspect
from typing import Any, Callable, Dict, Optional, Protocol, TYPE_CHECKING

import httpx

from constants import TOOL_KIND_AGENT_PROCESSOR, TOOL_KIND_FUNCTION, TOOL_KIND_HTTP
from core.logging import get_logger
from services.execution.models import InvocationContext
from services.handlers import handle_agent_processor, invoke_api_tool

if TYPE_CHECKING:
    from core.config import Settings
    from services.agent_runtime import AgentRuntime
    from services.tool_registry import ResolvedTool

logger = get_logger(__name__)


class NodeExecutor(Protocol):
    """Performs one tool call. Raises on failure."""

    async def invoke(self, tool: "ResolvedTool", inputs: Dict[str, Any],
                     context: InvocationContext) -> Any:
        ...


class ToolNodeExecutor:
    """Executes tools using registry-based dispatch on ``tool.kind``."""

    def __init__(
        self,
        agent_runtime: "AgentRuntime",
        settings: "Settings",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.agent_runtime = agent_runtime
        self.settings = settings
        self._transport = transport
        self._handlers = self._build_handler_registry()

    def _build_handler_registry(self) -> Dict[str, Callable]:
        """Map each tool kind to the method that invokes it."""
        return {
            TOOL_KIND_FUNCTION: self._invoke_function,
            TOOL_KIND_HTTP: self._invoke_http,
            TOOL_KIND_AGENT_PROCESSOR: self._invoke_agent_processor,
        }

    async def invoke(self, tool: "ResolvedTool", inputs: Dict[str, Any],
                     context: InvocationContext) -> Any:
        """Invoke a tool.

        Args:
            tool: Resolved tool
            inputs: Mapped node inputs
            context: Invocation context with the execution deadline

        Returns:
            Tool output

        Raises:
            ValueError: for an unsupported tool kind
            Exception: whatever the tool raises
        """
        handler = self._handlers.get(tool.kind)
        if handler is None:
            raise ValueError(f"Unsupported tool kind: {tool.kind}")

        logger.debug("[NodeExecutor] Invoking tool", tool_id=tool.tool_id, kind=tool.kind,
                     node_id=context.node_id, execution_id=context.execution_id)
        return await handler(tool, inputs, context)

    async def _invoke_function(self, tool: "ResolvedTool", inputs: Dict[str, Any],
                               context: InvocationContext) -> Any:
        if tool.func is None:
            raise ValueError(f"Tool {tool.tool_id} has no function bound")
        result = tool.func(inputs, context)
        if inspect.isawaitable(result):
            return await result
        return result

    async def _invoke_http(self, tool: "ResolvedTool", inputs: Dict[str, Any],
                           context: InvocationContext) -> Any:
        return await invoke_api_tool(
            tool.api_spec or {},
            inputs,
            context,
            default_timeout=self.settings.http_tool_timeout,
            transport=self._transport,
        )

    async def _invoke_agent_processor(self, tool: "ResolvedTool", inputs: Dict[str, Any],
                                      context: InvocationContext) -> Any:
        return await handle_agent_processor(inputs, context, agent_runtime=self.agent_runtime)
