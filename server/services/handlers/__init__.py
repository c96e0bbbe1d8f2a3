"""Tool handlers package.

- builtin.py: Echo, Current Time, Timer (static function tools)
- http.py: Dynamic API tools described by an apiSpec
- agent.py: Agent processor nodes
"""

from .builtin import (
    BUILTIN_TOOLS,
    tool_echo,
    tool_current_time,
    tool_timer,
)
from .http import (
    ApiToolError,
    invoke_api_tool,
)
from .agent import (
    handle_agent_processor,
)

__all__ = [
    # Built-in tools
    "BUILTIN_TOOLS",
    "tool_echo",
    "tool_current_time",
    "tool_timer",
    # HTTP
    "ApiToolError",
    "invoke_api_tool",
    # Agent
    "handle_agent_processor",
]
