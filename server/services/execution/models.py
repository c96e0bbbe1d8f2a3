"""Execution engine state models.

All persisted values go through ``to_json_safe`` so execution records are
always plain JSON data.
"""

import asyncio
import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel


class _Missing:
    """Sentinel for a path or placeholder that resolved to nothing.

    Distinct from None, which is a legitimate JSON null.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class ExecutionStatus(str, Enum):
    """Workflow execution states.

    State transitions:
        RUNNING -> COMPLETED
                -> FAILED      (node error, timeout)
                -> CANCELLED   (cancel_execution, shutdown)
    """
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_EXECUTION_STATUSES = frozenset([
    ExecutionStatus.COMPLETED.value,
    ExecutionStatus.FAILED.value,
    ExecutionStatus.CANCELLED.value,
])


class NodeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class NodeResult:
    """Outcome of a single node in one execution."""
    node_id: str
    status: NodeStatus
    output: Any = None
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def failed(self) -> bool:
        return self.status == NodeStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "nodeId": self.node_id,
            "status": self.status.value,
            "durationMs": self.duration_ms,
        }
        if self.output is not None:
            d["output"] = to_json_safe(self.output)
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class InvocationContext:
    """Per-node call context handed to NodeExecutor.invoke.

    ``deadline`` is an event-loop timestamp (``loop.time()``) after which
    the execution has timed out.
    """
    execution_id: str
    workflow_id: str
    node_id: str
    agent_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    deadline: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())


def _sanitize(value: Any) -> Any:
    if isinstance(value, Enum):
        return _sanitize(value.value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return _sanitize(value.model_dump(mode="json", by_alias=True))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _sanitize(dataclasses.asdict(value))
    if isinstance(value, dict):
        clean = {}
        for key, item in value.items():
            item = _sanitize(item)
            if item is not MISSING:
                clean[str(key)] = item
        return clean
    if isinstance(value, (list, tuple, set, frozenset)):
        return [None if item is MISSING else item for item in map(_sanitize, value)]
    return MISSING


def to_json_safe(value: Any) -> Any:
    """Reduce a value to pure JSON data.

    Unserializable values are dropped from objects and become null inside
    arrays. A top-level unserializable value becomes None.
    """
    clean = _sanitize(value)
    return None if clean is MISSING else clean
