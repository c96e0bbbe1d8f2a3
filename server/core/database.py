"""Async database service with SQLModel and SQLAlchemy 2.0."""

import logging
from typing import Dict, Any, List, Optional, Sequence
from sqlmodel import SQLModel, select
from sqlalchemy import update, delete
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from contextlib import asynccontextmanager

from core.config import Settings
from core.logging import get_logger
from models.database import Workflow, WorkflowExecution, Task, Tool, utc_now

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.settings.database_echo, "future": True}
        if self.settings.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.settings.database_url:
                # One shared connection so every session sees the same in-memory db
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_size"] = self.settings.database_pool_size
            kwargs["max_overflow"] = self.settings.database_max_overflow
        return kwargs

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

            self.engine = create_async_engine(self.settings.database_url, **self._engine_kwargs())

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def _add(self, record: SQLModel) -> SQLModel:
        async with self.get_session() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return record

    async def _execute_update(self, stmt) -> int:
        async with self.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    # ============================================================================
    # Workflows
    # ============================================================================

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Insert a new workflow."""
        try:
            return await self._add(workflow)
        except Exception as e:
            logger.error("Failed to create workflow", workflow_id=workflow.workflow_id, error=str(e))
            raise

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get workflow by ID."""
        async with self.get_session() as session:
            stmt = select(Workflow).where(Workflow.workflow_id == workflow_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_workflows(self, owner_id: str, owner_type: Optional[str] = None) -> List[Workflow]:
        """Get workflows owned by an agent or user, newest first."""
        async with self.get_session() as session:
            stmt = select(Workflow).where(Workflow.owner_id == owner_id)
            if owner_type:
                stmt = stmt.where(Workflow.owner_type == owner_type)
            stmt = stmt.order_by(Workflow.created_at.desc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_public_workflows(self, category: Optional[str] = None) -> List[Workflow]:
        """Get public workflows, most executed first."""
        async with self.get_session() as session:
            stmt = select(Workflow).where(Workflow.is_public == True)  # noqa: E712
            if category:
                stmt = stmt.where(Workflow.category == category)
            stmt = stmt.order_by(Workflow.execution_count.desc(), Workflow.created_at.asc())
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_workflow(self, workflow_id: str, **fields) -> Optional[Workflow]:
        """Apply field changes to a workflow. Returns None if it does not exist."""
        try:
            async with self.get_session() as session:
                stmt = select(Workflow).where(Workflow.workflow_id == workflow_id)
                result = await session.execute(stmt)
                workflow = result.scalar_one_or_none()
                if workflow is None:
                    return None

                for key, value in fields.items():
                    setattr(workflow, key, value)
                workflow.updated_at = utc_now()

                await session.commit()
                await session.refresh(workflow)
                return workflow

        except Exception as e:
            logger.error("Failed to update workflow", workflow_id=workflow_id, error=str(e))
            raise

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete workflow. Returns False if nothing was deleted."""
        try:
            rowcount = await self._execute_update(
                delete(Workflow).where(Workflow.workflow_id == workflow_id)
            )
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to delete workflow", workflow_id=workflow_id, error=str(e))
            raise

    async def record_workflow_execution(self, workflow_id: str) -> None:
        """Bump execution_count and last_executed_at after a completed run."""
        try:
            await self._execute_update(
                update(Workflow)
                .where(Workflow.workflow_id == workflow_id)
                .values(execution_count=Workflow.execution_count + 1, last_executed_at=utc_now())
            )
        except Exception as e:
            logger.error("Failed to record workflow execution", workflow_id=workflow_id, error=str(e))
            raise

    # ============================================================================
    # Executions
    # ============================================================================

    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Insert a new execution record."""
        try:
            return await self._add(execution)
        except Exception as e:
            logger.error("Failed to create execution", execution_id=execution.execution_id, error=str(e))
            raise

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Get execution by ID."""
        async with self.get_session() as session:
            stmt = select(WorkflowExecution).where(WorkflowExecution.execution_id == execution_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def update_execution(self, execution_id: str, **fields) -> bool:
        """Update a running execution. Returns False once the record is terminal."""
        try:
            rowcount = await self._execute_update(
                update(WorkflowExecution)
                .where(WorkflowExecution.execution_id == execution_id)
                .where(WorkflowExecution.status == "running")
                .values(**fields)
            )
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to update execution", execution_id=execution_id, error=str(e))
            raise

    async def finish_execution(self, execution_id: str, status: str,
                               expected_status: str = "running", **fields) -> bool:
        """Move an execution to a terminal status if it is still in expected_status.

        Args:
            execution_id: Execution to finish
            status: Terminal status to write
            expected_status: Status the record must currently have
            **fields: Additional columns (output_data, error_message, ...)

        Returns:
            True if this call performed the transition
        """
        fields.setdefault("completed_at", utc_now())
        try:
            rowcount = await self._execute_update(
                update(WorkflowExecution)
                .where(WorkflowExecution.execution_id == execution_id)
                .where(WorkflowExecution.status == expected_status)
                .values(status=status, **fields)
            )
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to finish execution", execution_id=execution_id, status=status, error=str(e))
            raise

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[WorkflowExecution]:
        """Get a workflow's executions, newest first."""
        async with self.get_session() as session:
            stmt = (
                select(WorkflowExecution)
                .where(WorkflowExecution.workflow_id == workflow_id)
                .order_by(WorkflowExecution.started_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_running_executions(self, task_id: Optional[str] = None) -> List[WorkflowExecution]:
        """Get running executions, optionally only those started for a task."""
        async with self.get_session() as session:
            stmt = select(WorkflowExecution).where(WorkflowExecution.status == "running")
            if task_id:
                stmt = stmt.where(WorkflowExecution.task_id == task_id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ============================================================================
    # Tasks
    # ============================================================================

    async def create_task(self, task: Task) -> Task:
        """Insert a new task."""
        try:
            return await self._add(task)
        except Exception as e:
            logger.error("Failed to create task", task_id=task.task_id, error=str(e))
            raise

    async def get_task(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        async with self.get_session() as session:
            stmt = select(Task).where(Task.task_id == task_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_tasks(self, task_ids: Sequence[str]) -> List[Task]:
        """Get every task whose id is in task_ids (missing ids are skipped)."""
        if not task_ids:
            return []
        async with self.get_session() as session:
            stmt = select(Task).where(Task.task_id.in_(list(task_ids)))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_task(self, task_id: str, **fields) -> bool:
        """Write task fields unconditionally. Returns False if the task does not exist."""
        fields.setdefault("updated_at", utc_now())
        try:
            rowcount = await self._execute_update(
                update(Task).where(Task.task_id == task_id).values(**fields)
            )
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to update task", task_id=task_id, error=str(e))
            raise

    async def transition_task(self, task_id: str, from_statuses: Sequence[str],
                              to_status: str, **fields) -> bool:
        """Conditionally move a task to to_status.

        The row is only updated while its current status is one of
        from_statuses, so two concurrent callers cannot both win.

        Returns:
            True if this call performed the transition
        """
        fields.setdefault("updated_at", utc_now())
        try:
            rowcount = await self._execute_update(
                update(Task)
                .where(Task.task_id == task_id)
                .where(Task.status.in_(list(from_statuses)))
                .values(status=to_status, **fields)
            )
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to transition task", task_id=task_id, to_status=to_status, error=str(e))
            raise

    async def fail_running_tasks(self, error_message: str) -> int:
        """Mark every task left in ``running`` as failed. Returns the row count."""
        now = utc_now()
        try:
            return await self._execute_update(
                update(Task)
                .where(Task.status == "running")
                .values(status="failed", error_message=error_message,
                        actual_end=now, progress=0, updated_at=now)
            )
        except Exception as e:
            logger.error("Failed to recover running tasks", error=str(e))
            raise

    async def list_session_tasks(self, session_id: str) -> List[Task]:
        """Get all tasks of a session ordered by priority desc, created_at asc."""
        async with self.get_session() as session:
            stmt = (
                select(Task)
                .where(Task.session_id == session_id)
                .order_by(Task.priority.desc(), Task.created_at.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_pending_tasks(self, agent_id: str, session_id: str) -> List[Task]:
        """Get pending tasks for an agent/session ordered by priority desc, created_at asc."""
        async with self.get_session() as session:
            stmt = (
                select(Task)
                .where(Task.agent_id == agent_id)
                .where(Task.session_id == session_id)
                .where(Task.status == "pending")
                .order_by(Task.priority.desc(), Task.created_at.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_recurring_tasks(self) -> List[Task]:
        """Get recurring tasks that still have a cron expression and are not cancelled."""
        async with self.get_session() as session:
            stmt = (
                select(Task)
                .where(Task.is_recurring == True)  # noqa: E712
                .where(Task.cron_expression.is_not(None))
                .where(Task.status != "cancelled")
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_task(self, task_id: str) -> bool:
        """Delete task. Returns False if nothing was deleted."""
        try:
            rowcount = await self._execute_update(delete(Task).where(Task.task_id == task_id))
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to delete task", task_id=task_id, error=str(e))
            raise

    # ============================================================================
    # Tools
    # ============================================================================

    async def save_tool(self, tool: Tool) -> Tool:
        """Insert or replace a tool definition."""
        try:
            async with self.get_session() as session:
                merged = await session.merge(tool)
                await session.commit()
                await session.refresh(merged)
                return merged
        except Exception as e:
            logger.error("Failed to save tool", tool_id=tool.tool_id, error=str(e))
            raise

    async def get_tool(self, tool_id: str) -> Optional[Tool]:
        """Get tool by ID."""
        async with self.get_session() as session:
            stmt = select(Tool).where(Tool.tool_id == tool_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_tools(self) -> List[Tool]:
        async with self.get_session() as session:
            result = await session.execute(select(Tool).order_by(Tool.name))
            return list(result.scalars().all())

    async def delete_tool(self, tool_id: str) -> bool:
        try:
            rowcount = await self._execute_update(delete(Tool).where(Tool.tool_id == tool_id))
            return rowcount > 0
        except Exception as e:
            logger.error("Failed to delete tool", tool_id=tool_id, error=str(e))
            raise
