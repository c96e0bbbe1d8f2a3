"""Pydantic models for workflow definitions.

Definitions arrive as camelCase JSON (``startNodeId``, ``toolId``,
``sourceHandle`` ...). Fields are snake_case in Python with camelCase
aliases, and are stored back by alias so the persisted JSON keeps the
same shape it was submitted in.
"""

from typing import Literal, Optional, Dict, Any, List
from pydantic import BaseModel, Field

from constants import CONTINUE_ON_ERROR_KEY


# =============================================================================
# GRAPH ELEMENTS
# =============================================================================

class NodePosition(BaseModel):
    """Canvas position. Layout only, never read by the engine."""
    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """A workflow step."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    id: str = Field(min_length=1)
    type: Literal["tool", "agent_processor", "input", "output"] = "tool"
    tool_id: Optional[str] = Field(default=None, alias="toolId")
    # Display name cached by the validator for diagnostics
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    label: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    position: NodePosition = Field(default_factory=NodePosition)

    @property
    def continue_on_error(self) -> bool:
        return self.config.get(CONTINUE_ON_ERROR_KEY) is True


class WorkflowEdge(BaseModel):
    """Directed data/precedence link between two nodes."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")
    # sourceField (dot-path) -> targetField
    mapping: Optional[Dict[str, str]] = None
    label: Optional[str] = None


# =============================================================================
# DEFINITION
# =============================================================================

class WorkflowDefinition(BaseModel):
    """Complete workflow graph plus execution settings."""
    model_config = {"populate_by_name": True, "extra": "allow"}

    start_node_id: Optional[str] = Field(default=None, alias="startNodeId")
    end_node_id: Optional[str] = Field(default=None, alias="endNodeId")
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    output_mapping: Optional[Dict[str, str]] = Field(default=None, alias="outputMapping")
    # Falls back to Settings.workflow_timeout_ms when omitted
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs", gt=0)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def to_storage(self) -> Dict[str, Any]:
        """Serialize for the JSON definition column."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
