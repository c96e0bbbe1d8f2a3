"""Structural validation of workflow definitions."""

from collections import deque
from typing import Dict, List, Set, TYPE_CHECKING

from constants import NODE_TYPE_TOOL
from core.errors import (
    CycleDetected,
    DuplicateNodeId,
    MissingNodeReference,
    UnknownNodeReference,
    UnknownTool,
    UnreachableEndNode,
)
from core.logging import get_logger
from models.workflow import WorkflowDefinition

if TYPE_CHECKING:
    from services.tool_registry import ToolRegistry

logger = get_logger(__name__)

# DFS colours
_UNVISITED, _ON_STACK, _DONE = 0, 1, 2


def _adjacency(definition: WorkflowDefinition) -> Dict[str, List[str]]:
    graph: Dict[str, List[str]] = {node.id: [] for node in definition.nodes}
    for edge in definition.edges:
        graph[edge.source].append(edge.target)
    return graph


def find_cycle(graph: Dict[str, List[str]]) -> List[str]:
    """Return one cycle as a node path (first node repeated at the end), or [].

    Iterative DFS over every component; a cycle is an edge back into a node
    that is still on the active DFS stack.
    """
    state = {node_id: _UNVISITED for node_id in graph}

    for root in graph:
        if state[root] != _UNVISITED:
            continue

        path = [root]
        state[root] = _ON_STACK
        iterators = [iter(graph[root])]

        while iterators:
            neighbor = next(iterators[-1], None)
            if neighbor is None:
                state[path.pop()] = _DONE
                iterators.pop()
                continue
            if state[neighbor] == _ON_STACK:
                return path[path.index(neighbor):] + [neighbor]
            if state[neighbor] == _UNVISITED:
                state[neighbor] = _ON_STACK
                path.append(neighbor)
                iterators.append(iter(graph[neighbor]))

    return []


def is_reachable(graph: Dict[str, List[str]], start: str, end: str) -> bool:
    """BFS from start; True if end is reached."""
    visited: Set[str] = {start}
    queue = deque([start])
    while queue:
        current = queue.popleft()
        if current == end:
            return True
        for neighbor in graph.get(current, []):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return False


class GraphValidator:
    """Validates workflow graphs before they are stored."""

    def __init__(self, tool_registry: "ToolRegistry"):
        self.tool_registry = tool_registry

    async def validate(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Validate a definition and return a copy with tool names cached on nodes.

        An empty node list is accepted as-is so definitions can be built
        incrementally.

        Raises:
            DuplicateNodeId: two nodes share an id
            MissingNodeReference: startNodeId/endNodeId is not a node
            UnknownNodeReference: an edge endpoint is not a node
            CycleDetected: the graph has a cycle
            UnknownTool: a tool node's toolId does not resolve
            UnreachableEndNode: end cannot be reached from start
        """
        if not definition.nodes:
            return definition

        validated = definition.model_copy(deep=True)
        node_ids: Set[str] = set()
        for node in validated.nodes:
            if node.id in node_ids:
                raise DuplicateNodeId(node.id)
            node_ids.add(node.id)

        if validated.start_node_id and validated.start_node_id not in node_ids:
            raise MissingNodeReference(validated.start_node_id, "startNodeId")
        if validated.end_node_id and validated.end_node_id not in node_ids:
            raise MissingNodeReference(validated.end_node_id, "endNodeId")

        for edge in validated.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in node_ids:
                    raise UnknownNodeReference(endpoint, f"edge {edge.source} -> {edge.target}")

        graph = _adjacency(validated)
        cycle = find_cycle(graph)
        if cycle:
            raise CycleDetected(cycle)

        for node in validated.nodes:
            if node.type != NODE_TYPE_TOOL:
                continue
            tool = await self.tool_registry.resolve(node.tool_id)
            if tool is None:
                raise UnknownTool(node.tool_id, node.id)
            node.tool_name = tool.name

        if validated.start_node_id and validated.end_node_id:
            if not is_reachable(graph, validated.start_node_id, validated.end_node_id):
                raise UnreachableEndNode(validated.start_node_id, validated.end_node_id)

        connected: Set[str] = set()
        for edge in validated.edges:
            connected.add(edge.source)
            connected.add(edge.target)
        isolated = [node.id for node in validated.nodes if node.id not in connected]
        if isolated and len(validated.nodes) > 1:
            logger.warning("[Validator] Workflow has isolated nodes", node_ids=isolated)

        return validated
