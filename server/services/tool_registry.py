"""Tool Registry - resolves tool ids to invocable tool descriptions.

Two sources are consulted: the ``tools`` table (dynamic HTTP tools
registered at runtime) and an in-memory static registry of in-process
function tools.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from constants import (
    AGENT_PROCESSOR_TOOL_ID,
    TOOL_KIND_AGENT_PROCESSOR,
    TOOL_KIND_FUNCTION,
    TOOL_KIND_HTTP,
)
from core.logging import get_logger
from models.database import Tool, new_id
from services.handlers import BUILTIN_TOOLS

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)


@dataclass
class ResolvedTool:
    """A tool ready for NodeExecutor.invoke."""
    tool_id: str
    name: str
    kind: str
    description: Optional[str] = None
    api_spec: Optional[Dict[str, Any]] = None
    func: Optional[Callable] = None


AGENT_PROCESSOR_TOOL = ResolvedTool(
    tool_id=AGENT_PROCESSOR_TOOL_ID,
    name="Agent Processor",
    kind=TOOL_KIND_AGENT_PROCESSOR,
    description="Processes node inputs with the agent runtime",
)


class ToolRegistry:
    """Database-backed plus static in-memory tool registry."""

    def __init__(self, database: "Database", include_builtins: bool = True):
        self.database = database
        self._static: Dict[str, ResolvedTool] = {}
        if include_builtins:
            for tool_id, (name, func, description) in BUILTIN_TOOLS.items():
                self.register_function(tool_id, func, name=name, description=description)

    def register_function(self, tool_id: str, func: Callable, name: Optional[str] = None,
                          description: Optional[str] = None) -> ResolvedTool:
        """Register an in-process function tool.

        ``func(inputs, context)`` may be sync or async.
        """
        if not callable(func):
            raise TypeError(f"Tool {tool_id} is not callable")
        tool = ResolvedTool(
            tool_id=tool_id,
            name=name or tool_id,
            kind=TOOL_KIND_FUNCTION,
            description=description or inspect.getdoc(func),
            func=func,
        )
        self._static[tool_id] = tool
        logger.debug("[ToolRegistry] Registered function tool", tool_id=tool_id)
        return tool

    def unregister_function(self, tool_id: str) -> bool:
        return self._static.pop(tool_id, None) is not None

    def list_static_tools(self) -> List[ResolvedTool]:
        return list(self._static.values())

    async def register_api_tool(self, name: str, api_spec: Dict[str, Any],
                                tool_id: Optional[str] = None,
                                description: Optional[str] = None) -> ResolvedTool:
        """Persist a dynamic HTTP tool.

        Args:
            name: Display name
            api_spec: method, baseUrl, path, headers, queryParams, bodyTemplate
            tool_id: Explicit id (generated when omitted)
            description: Optional description

        Returns:
            The resolved tool
        """
        if not api_spec.get('baseUrl'):
            raise ValueError("apiSpec.baseUrl is required")
        query_params = api_spec.get('queryParams')
        if query_params is not None and not isinstance(query_params, dict):
            raise ValueError("apiSpec.queryParams must be an object")

        record = await self.database.save_tool(Tool(
            tool_id=tool_id or new_id(),
            name=name,
            kind=TOOL_KIND_HTTP,
            description=description,
            api_spec=api_spec,
        ))
        logger.info("[ToolRegistry] Registered API tool", tool_id=record.tool_id, name=name)
        return self._from_record(record)

    async def resolve(self, tool_id: Optional[str]) -> Optional[ResolvedTool]:
        """Resolve a tool id. Returns None when it is unknown."""
        if not tool_id:
            return None
        if tool_id == AGENT_PROCESSOR_TOOL_ID:
            return AGENT_PROCESSOR_TOOL

        record = await self.database.get_tool(tool_id)
        if record is not None:
            return self._from_record(record)

        return self._static.get(tool_id)

    @staticmethod
    def _from_record(record: Tool) -> ResolvedTool:
        return ResolvedTool(
            tool_id=record.tool_id,
            name=record.name,
            kind=record.kind,
            description=record.description,
            api_spec=record.api_spec or {},
        )
