"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import func


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Workflow(SQLModel, table=True):
    """Persisted workflow definitions."""

    __tablename__ = "workflows"

    workflow_id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    owner_id: str = Field(index=True, max_length=255)
    owner_type: str = Field(default="agent", max_length=50)
    definition: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    input_schema: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    output_schema: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    actual_output_schema: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    schema_locked: bool = Field(default=False)
    is_public: bool = Field(default=False, index=True)
    category: Optional[str] = Field(default=None, max_length=100)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    execution_count: int = Field(default=0)
    last_executed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class WorkflowExecution(SQLModel, table=True):
    """One run of a workflow. Mutated only by the run that owns it."""

    __tablename__ = "workflow_executions"

    execution_id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    workflow_id: str = Field(index=True, max_length=255)
    agent_id: Optional[str] = Field(default=None, max_length=255)
    session_id: Optional[str] = Field(default=None, max_length=255)
    task_id: Optional[str] = Field(default=None, index=True, max_length=255)
    user_id: Optional[str] = Field(default=None, max_length=255)
    status: str = Field(default="running", index=True, max_length=50)
    current_node: Optional[str] = Field(default=None, max_length=255)
    node_results: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    input_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    output_data: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None)
    started_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )


class Task(SQLModel, table=True):
    """Unit of agent work, optionally recurring or gated on other tasks."""

    __tablename__ = "tasks"

    task_id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    agent_id: str = Field(index=True, max_length=255)
    session_id: str = Field(index=True, max_length=255)
    title: str = Field(max_length=500)
    description: Optional[str] = Field(default=None)
    execution_mode: str = Field(default="single", max_length=50)
    workflow_id: Optional[str] = Field(default=None, max_length=255)
    workflow_inputs: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    tools: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    context: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    cron_expression: Optional[str] = Field(default=None, max_length=255)
    scheduled_for: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    is_recurring: bool = Field(default=False)
    next_run_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    last_run_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    depends_on: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    priority: int = Field(default=0)
    status: str = Field(default="pending", index=True, max_length=50)
    progress: int = Field(default=0)
    result_content: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    summary: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    created_by: Optional[str] = Field(default=None, max_length=255)
    created_by_type: Optional[str] = Field(default=None, max_length=50)
    actual_start: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    actual_end: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class Tool(SQLModel, table=True):
    """Database-backed tool definitions (dynamic HTTP tools)."""

    __tablename__ = "tools"

    tool_id: str = Field(default_factory=new_id, primary_key=True, max_length=255)
    name: str = Field(max_length=255)
    kind: str = Field(default="http", max_length=50)
    description: Optional[str] = Field(default=None)
    api_spec: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
