"""Task models: lifecycle enums, creation input and execution results."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task lifecycle states.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
        PENDING/RUNNING/FAILED -> CANCELLED
        COMPLETED (recurring) -> PENDING  (fresh cycle)
        FAILED -> RUNNING                 (explicit re-run)
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# States an execute_task call may claim into RUNNING
CLAIMABLE_TASK_STATUSES = (TaskStatus.PENDING.value, TaskStatus.FAILED.value)


class ExecutionMode(str, Enum):
    SINGLE = "single"
    WORKFLOW = "workflow"
    SEQUENTIAL = "sequential"


class TaskCreate(BaseModel):
    """Input for TaskCoordinator.create_task."""
    model_config = {"populate_by_name": True}

    agent_id: str = Field(alias="agentId")
    session_id: str = Field(alias="sessionId")
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    execution_mode: ExecutionMode = Field(default=ExecutionMode.SINGLE, alias="executionMode")
    workflow_id: Optional[str] = Field(default=None, alias="workflowId")
    workflow_inputs: Optional[Dict[str, Any]] = Field(default=None, alias="workflowInputs")
    tools: List[str] = Field(default_factory=list)
    context: Optional[Dict[str, Any]] = None
    cron_expression: Optional[str] = Field(default=None, alias="cronExpression")
    interval_seconds: Optional[int] = Field(default=None, alias="intervalSeconds")
    scheduled_for: Optional[datetime] = Field(default=None, alias="scheduledFor")
    is_recurring: bool = Field(default=False, alias="isRecurring")
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    priority: int = 0
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    created_by_type: Optional[str] = Field(default=None, alias="createdByType")


@dataclass
class TaskExecutionResult:
    """Outcome of one execute_task call."""
    task_id: str
    status: str
    result_content: Any = None
    summary: Optional[str] = None
    error_message: Optional[str] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "taskId": self.task_id,
            "status": self.status,
            "durationMs": self.duration_ms,
        }
        if self.result_content is not None:
            d["resultContent"] = self.result_content
        if self.summary is not None:
            d["summary"] = self.summary
        if self.error_message is not None:
            d["errorMessage"] = self.error_message
        return d
