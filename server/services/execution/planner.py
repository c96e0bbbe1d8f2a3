"""Topological execution planning (Kahn's algorithm)."""

from collections import deque
from typing import Dict, List, Sequence

from core.errors import CycleDetected
from core.logging import get_logger
from models.workflow import WorkflowEdge, WorkflowNode

logger = get_logger(__name__)


class ExecutionPlanner:
    """Orders nodes so every edge source runs before its target."""

    def plan(self, nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]) -> List[str]:
        """Return node ids in execution order.

        Ready nodes are processed FIFO, seeded in node array order, so the
        order is stable for a given definition.

        Raises:
            CycleDetected: if some nodes never reach in-degree 0
        """
        in_degree: Dict[str, int] = {node.id: 0 for node in nodes}
        adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}

        for edge in edges:
            if edge.source not in in_degree or edge.target not in in_degree:
                logger.warning("[Planner] Ignoring edge with unknown endpoint",
                               source=edge.source, target=edge.target)
                continue
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order: List[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for neighbor in adjacency[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if len(order) != len(in_degree):
            remaining = [node_id for node_id, degree in in_degree.items() if degree > 0]
            raise CycleDetected(remaining)

        return order
