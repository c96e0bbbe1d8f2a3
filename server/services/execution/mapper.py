"""Data mapping between workflow nodes.

Projects upstream node outputs into a downstream node's input object via
edge field mappings and dot-paths.
"""

from typing import Any, Dict, List, Optional, Sequence

from core.logging import get_logger
from models.workflow import WorkflowEdge
from services.execution.models import MISSING

logger = get_logger(__name__)


def get_nested_value(data: Any, field_path: str, default: Any = None) -> Any:
    """Get a nested value from JSON-like data using dot notation.

    Numeric segments index into lists. A missing path never raises.

    Args:
        data: Value to extract from (dict, list or scalar)
        field_path: Dot-separated path (e.g., "result.status", "items.0.name")
        default: Returned when the path does not resolve

    Returns:
        Value at path, or ``default`` if not found

    Examples:
        >>> get_nested_value({"result": {"status": "ok"}}, "result.status")
        'ok'
        >>> get_nested_value({"items": [{"name": "a"}]}, "items.0.name")
        'a'
    """
    if not field_path:
        return default

    current = data
    for part in field_path.split('.'):
        if isinstance(current, dict):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default

    return current


class DataMapper:
    """Builds node inputs from upstream outputs."""

    def map_inputs(
        self,
        node_id: str,
        edges: Sequence[WorkflowEdge],
        node_outputs: Dict[str, Any],
        node_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge every incoming edge into one input object.

        Per edge, in order of precedence:
            - ``mapping``: each sourceField dot-path is copied to targetField
              when it resolves
            - ``sourceHandle``/``targetHandle``: a single-field mapping
            - neither: the whole upstream output under the source node id

        The node's own config is applied last, so config keys win.
        """
        inputs: Dict[str, Any] = {}

        for edge in edges:
            if edge.target != node_id:
                continue

            source_output = node_outputs.get(edge.source)
            if source_output is None:
                continue

            if edge.mapping:
                for source_field, target_field in edge.mapping.items():
                    value = get_nested_value(source_output, source_field, MISSING)
                    if value is not MISSING:
                        inputs[target_field] = value
            elif edge.source_handle and edge.target_handle:
                value = get_nested_value(source_output, edge.source_handle, MISSING)
                if value is not MISSING:
                    inputs[edge.target_handle] = value
            else:
                inputs[edge.source] = source_output

        if node_config:
            inputs.update(node_config)

        return inputs

    def get_final_output(
        self,
        execution_order: List[str],
        node_outputs: Dict[str, Any],
        output_mapping: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Compute the workflow result.

        With an output mapping, each ``outputKey: "nodeId.field.path"`` entry
        is resolved against node outputs; unresolved entries are left out.
        Without one, the output of the last node in execution order is used.
        """
        if output_mapping:
            result: Dict[str, Any] = {}
            for output_key, source_path in output_mapping.items():
                node_id, _, field_path = source_path.partition('.')
                node_output = node_outputs.get(node_id)
                if node_output is None:
                    continue
                value = get_nested_value(node_output, field_path, MISSING) if field_path else node_output
                if value is not MISSING:
                    result[output_key] = value
            return result

        if not execution_order:
            return None
        return node_outputs.get(execution_order[-1])
