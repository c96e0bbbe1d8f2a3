"""Execution engine package.

Workflow execution built from small pieces:
- GraphValidator: structural checks (cycles, dangling references, reachability, tools)
- ExecutionPlanner: Kahn's-algorithm topological ordering
- DataMapper: node-to-node input projection via mappings and dot-paths
- TemplateValue interpreter for request bodies and query parameters
- WorkflowEngine: execution records, timeout, cancellation and error policy
"""

from .models import (
    MISSING,
    ExecutionStatus,
    NodeStatus,
    NodeResult,
    InvocationContext,
    TERMINAL_EXECUTION_STATUSES,
    to_json_safe,
)
from .mapper import DataMapper, get_nested_value
from .planner import ExecutionPlanner
from .templates import (
    LiteralValue,
    Placeholder,
    TemplateList,
    TemplateMap,
    TemplateValue,
    parse_template,
    render_template,
    render_query_params,
)
from .validator import GraphValidator, find_cycle, is_reachable
from .engine import WorkflowEngine

__all__ = [
    # Models
    "MISSING",
    "ExecutionStatus",
    "NodeStatus",
    "NodeResult",
    "InvocationContext",
    "TERMINAL_EXECUTION_STATUSES",
    "to_json_safe",
    # Mapping
    "DataMapper",
    "get_nested_value",
    # Planning
    "ExecutionPlanner",
    # Templates
    "LiteralValue",
    "Placeholder",
    "TemplateList",
    "TemplateMap",
    "TemplateValue",
    "parse_template",
    "render_template",
    "render_query_params",
    # Validation
    "GraphValidator",
    "find_cycle",
    "is_reachable",
    # Engine
    "WorkflowEngine",
]
