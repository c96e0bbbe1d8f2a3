"""Task Coordinator - dependency gating, dispatch and recurrence for tasks.

A task runs either a stored workflow (``workflow`` mode) or is handed to
the agent runtime (``single``/``sequential``). Recurring tasks are armed
in the CronScheduler and go back to ``pending`` after each successful run.

The pending -> running claim is a conditional update, so a cron fire and
a manual trigger racing on the same task cannot both run it.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from core.errors import (
    DependencyNotSatisfied,
    ExecutionTimeout,
    InvalidCronExpression,
    InvalidTaskConfiguration,
    TaskNotFound,
    UnknownDependency,
    WorkflowExecutionFailed,
)
from core.logging import get_logger, log_execution_time
from models.database import Task, ensure_utc, utc_now
from models.task import (
    CLAIMABLE_TASK_STATUSES,
    ExecutionMode,
    TaskCreate,
    TaskExecutionResult,
    TaskStatus,
)
from services.execution.models import ExecutionStatus, to_json_safe
from services.scheduler import interval_to_cron

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from services.agent_runtime import AgentRuntime
    from services.scheduler import CronScheduler
    from services.workflow import WorkflowService

logger = get_logger(__name__)

CANCELLED_RUN_MESSAGE = "Task execution cancelled"
INTERRUPTED_RUN_MESSAGE = "Task interrupted before completion"


class TaskCoordinator:
    """Creates, gates, executes and reschedules tasks."""

    def __init__(
        self,
        database: "Database",
        workflow_service: "WorkflowService",
        cron_scheduler: "CronScheduler",
        agent_runtime: "AgentRuntime",
        settings: "Settings",
    ):
        self.database = database
        self.workflow_service = workflow_service
        self.cron_scheduler = cron_scheduler
        self.agent_runtime = agent_runtime
        self.settings = settings
        self._active_runs: Dict[str, asyncio.Task] = {}
        self.cron_scheduler.set_fire_callback(self._on_cron_fire)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize_scheduled_tasks(self) -> int:
        """Re-arm cron jobs for every recurring task. Returns the number armed.

        Tasks still marked ``running`` belong to a previous process and are
        failed first, so they can be claimed again.
        """
        recovered = await self.database.fail_running_tasks(INTERRUPTED_RUN_MESSAGE)
        if recovered:
            logger.warning("[Tasks] Failed tasks interrupted by a restart", count=recovered)

        count = 0
        for task in await self.database.list_recurring_tasks():
            try:
                self.cron_scheduler.schedule(task.task_id, task.cron_expression)
                count += 1
            except InvalidCronExpression as e:
                logger.error("[Tasks] Skipping recurring task with invalid cron",
                             task_id=task.task_id, error=str(e))
        logger.info("[Tasks] Scheduled recurring tasks", count=count)
        return count

    async def shutdown(self) -> None:
        """Unschedule every job, then cancel and await in-flight task runs."""
        for task_id in self.cron_scheduler.scheduled_task_ids():
            self.cron_scheduler.unschedule(task_id)

        current = asyncio.current_task()
        runs = [run for run in self._active_runs.values() if run is not current and not run.done()]
        for run in runs:
            run.cancel()
        if runs:
            logger.info("[Tasks] Cancelling in-flight task runs", count=len(runs))
            await asyncio.gather(*runs, return_exceptions=True)

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_task(self, params: TaskCreate) -> Task:
        """Validate and persist a task, arming its cron job when recurring.

        Raises:
            InvalidTaskConfiguration: workflow mode without a workflow id
            WorkflowNotFound: the referenced workflow does not exist
            UnknownDependency: a dependsOn id does not exist
            InvalidCronExpression: a recurring task without a valid schedule
        """
        if params.execution_mode == ExecutionMode.WORKFLOW and not params.workflow_id:
            raise InvalidTaskConfiguration("Workflow mode requires a workflowId")
        if params.workflow_id:
            await self.workflow_service.get_workflow(params.workflow_id)

        if params.depends_on:
            found = {task.task_id for task in await self.database.get_tasks(params.depends_on)}
            for dependency_id in params.depends_on:
                if dependency_id not in found:
                    raise UnknownDependency(dependency_id)

        cron_expression = params.cron_expression
        if params.is_recurring and not cron_expression and params.interval_seconds:
            cron_expression = interval_to_cron(params.interval_seconds)
        if params.is_recurring and not cron_expression:
            raise InvalidCronExpression(None, "recurring tasks require a cron expression")

        if cron_expression:
            next_run_at = self.cron_scheduler.next_fire_time(cron_expression)
        else:
            next_run_at = ensure_utc(params.scheduled_for)

        task = await self.database.create_task(Task(
            agent_id=params.agent_id,
            session_id=params.session_id,
            title=params.title,
            description=params.description,
            execution_mode=params.execution_mode.value,
            workflow_id=params.workflow_id,
            workflow_inputs=params.workflow_inputs,
            tools=list(params.tools),
            context=params.context,
            cron_expression=cron_expression,
            scheduled_for=ensure_utc(params.scheduled_for),
            is_recurring=params.is_recurring,
            next_run_at=next_run_at,
            depends_on=list(params.depends_on),
            priority=params.priority,
            status=TaskStatus.PENDING.value,
            created_by=params.created_by,
            created_by_type=params.created_by_type,
        ))

        if task.is_recurring:
            self.cron_scheduler.schedule(task.task_id, cron_expression)

        logger.info("[Tasks] Created task", task_id=task.task_id, mode=task.execution_mode,
                    recurring=task.is_recurring, depends_on=len(task.depends_on))
        return task

    async def get_task(self, task_id: str) -> Task:
        task = await self.database.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def list_session_tasks(self, session_id: str) -> List[Task]:
        return await self.database.list_session_tasks(session_id)

    async def cancel_task(self, task_id: str) -> bool:
        """Stop a task's schedule and mark it cancelled.

        Completed and already-cancelled tasks keep their status.

        Returns:
            True if the status changed to cancelled
        """
        await self.get_task(task_id)
        self.cron_scheduler.unschedule(task_id)

        cancelled = await self.database.transition_task(
            task_id,
            [TaskStatus.PENDING.value, TaskStatus.RUNNING.value, TaskStatus.FAILED.value],
            TaskStatus.CANCELLED.value,
        )
        if cancelled:
            stopped = await self.workflow_service.engine.cancel_task_executions(task_id)
            logger.info("[Tasks] Cancelled task", task_id=task_id, stopped_executions=stopped)
        return cancelled

    async def delete_task(self, task_id: str) -> None:
        self.cron_scheduler.unschedule(task_id)
        if not await self.database.delete_task(task_id):
            raise TaskNotFound(task_id)
        logger.info("[Tasks] Deleted task", task_id=task_id)

    # =========================================================================
    # GATING
    # =========================================================================

    async def _check_dependencies(self, task: Task) -> None:
        """Raise DependencyNotSatisfied unless every dependency is completed."""
        if not task.depends_on:
            return
        completed = {
            dependency.task_id
            for dependency in await self.database.get_tasks(task.depends_on)
            if dependency.status == TaskStatus.COMPLETED.value
        }
        pending = [dependency_id for dependency_id in task.depends_on if dependency_id not in completed]
        if pending:
            raise DependencyNotSatisfied(task.task_id, pending)

    async def get_next_executable_task(self, agent_id: str, session_id: str) -> Optional[Task]:
        """Highest-priority pending task of an agent/session that may run now.

        Tasks whose nextRunAt/scheduledFor is in the future, or whose
        dependencies are not all completed, are skipped.
        """
        now = utc_now()
        for task in await self.database.list_pending_tasks(agent_id, session_id):
            next_run_at = ensure_utc(task.next_run_at)
            if next_run_at is not None and next_run_at > now:
                continue
            scheduled_for = ensure_utc(task.scheduled_for)
            if scheduled_for is not None and scheduled_for > now:
                continue
            try:
                await self._check_dependencies(task)
            except DependencyNotSatisfied:
                continue
            return task
        return None

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_task(self, task_id: str) -> TaskExecutionResult:
        """Run a task once.

        Returns a failure result without touching the task when it is
        already running, not claimable, or has unfinished dependencies.

        Raises:
            TaskNotFound: if the task does not exist
        """
        start_time = time.monotonic()
        task = await self.get_task(task_id)

        if task.status == TaskStatus.RUNNING.value:
            return self._rejected(task_id, "Task is already running", start_time)
        if task.status not in CLAIMABLE_TASK_STATUSES:
            return self._rejected(task_id, f"Task is {task.status}", start_time)

        try:
            await self._check_dependencies(task)
        except DependencyNotSatisfied as e:
            logger.info("[Tasks] Dependencies not completed", task_id=task_id, pending=e.pending)
            return self._rejected(task_id, str(e), start_time)

        claimed = await self.database.transition_task(
            task_id,
            CLAIMABLE_TASK_STATUSES,
            TaskStatus.RUNNING.value,
            actual_start=utc_now(),
            actual_end=None,
            error_message=None,
            progress=0,
        )
        if not claimed:
            return self._rejected(task_id, "Task is already running", start_time)

        logger.info("[Tasks] Executing task", task_id=task_id, mode=task.execution_mode)

        run = asyncio.current_task()
        if run is not None:
            self._active_runs[task_id] = run
        try:
            return await self._run_claimed(task, start_time)
        finally:
            self._active_runs.pop(task_id, None)

    async def _run_claimed(self, task: Task, start_time: float) -> TaskExecutionResult:
        task_id = task.task_id
        try:
            result_content, summary = await self._dispatch(task)
        except asyncio.CancelledError:
            logger.warning("[Tasks] Task execution cancelled", task_id=task_id)
            result = TaskExecutionResult(
                task_id=task_id,
                status=TaskStatus.FAILED.value,
                error_message=CANCELLED_RUN_MESSAGE,
                duration_ms=self._elapsed_ms(start_time),
            )
            await asyncio.shield(self._complete_task(task, result))
            raise
        except Exception as e:
            logger.error("[Tasks] Task execution failed", task_id=task_id, error=str(e))
            result = TaskExecutionResult(
                task_id=task_id,
                status=TaskStatus.FAILED.value,
                error_message=str(e) or type(e).__name__,
                duration_ms=self._elapsed_ms(start_time),
            )
            await self._complete_task(task, result)
            return result

        result = TaskExecutionResult(
            task_id=task_id,
            status=TaskStatus.COMPLETED.value,
            result_content=to_json_safe(result_content),
            summary=summary,
            duration_ms=self._elapsed_ms(start_time),
        )
        if await self._complete_task(task, result) and task.is_recurring and task.cron_expression:
            await self._reset_recurring(task)

        log_execution_time(logger, "execute_task", start_time, time.monotonic(),
                           task_id=task_id, mode=task.execution_mode)
        return result

    async def _dispatch(self, task: Task) -> Tuple[Any, str]:
        if task.execution_mode == ExecutionMode.WORKFLOW.value:
            return await self._run_workflow(task)

        result = await self.agent_runtime.dispatch_single_task(task)
        return result, "Task queued for agent execution"

    async def _run_workflow(self, task: Task) -> Tuple[Any, str]:
        if not task.workflow_id:
            raise InvalidTaskConfiguration("Workflow mode requires a workflowId")

        workflow = await self.workflow_service.get_workflow(task.workflow_id)
        execution_id = await self.workflow_service.execute_workflow(
            task.workflow_id,
            agent_id=task.agent_id,
            session_id=task.session_id,
            task_id=task.task_id,
            input_data=task.workflow_inputs or {},
        )
        execution = await self.workflow_service.wait_for_completion(
            execution_id,
            timeout=self.settings.task_wait_timeout,
            poll_interval=self.settings.task_poll_interval,
        )

        if execution.status == ExecutionStatus.COMPLETED.value:
            await self.workflow_service.capture_actual_output(task.workflow_id, execution.output_data)
            return execution.output_data, f"Workflow {workflow.name} executed successfully"
        if execution.status in (ExecutionStatus.FAILED.value, ExecutionStatus.CANCELLED.value):
            raise WorkflowExecutionFailed(
                execution_id, execution.status,
                execution.error_message or f"Workflow {execution.status}",
            )
        raise ExecutionTimeout(execution_id, message="Workflow execution timeout")

    async def _complete_task(self, task: Task, result: TaskExecutionResult) -> bool:
        """Persist the outcome of a run if the task is still ours to finish.

        Returns:
            False when the task left ``running`` meanwhile (e.g. cancelled)
        """
        now = utc_now()
        success = result.success
        fields = {
            "result_content": result.result_content,
            "summary": result.summary,
            "error_message": result.error_message,
            "actual_end": now,
            "progress": 100 if success else 0,
        }
        if success:
            fields["completed_at"] = now

        finished = await self.database.transition_task(
            task.task_id, [TaskStatus.RUNNING.value], result.status, **fields
        )
        if not finished:
            logger.warning("[Tasks] Task left running state before completion",
                           task_id=task.task_id, outcome=result.status)
        return finished

    async def _reset_recurring(self, task: Task) -> None:
        now = utc_now()
        next_run_at = self.cron_scheduler.next_fire_time(task.cron_expression, now)
        await self.database.transition_task(
            task.task_id,
            [TaskStatus.COMPLETED.value],
            TaskStatus.PENDING.value,
            last_run_at=now,
            next_run_at=next_run_at,
        )
        logger.info("[Tasks] Recurring task rescheduled", task_id=task.task_id,
                    next_run_at=next_run_at.isoformat())

    async def _on_cron_fire(self, task_id: str) -> None:
        try:
            result = await self.execute_task(task_id)
        except TaskNotFound:
            logger.warning("[Tasks] Scheduled task no longer exists, unscheduling", task_id=task_id)
            self.cron_scheduler.unschedule(task_id)
            return
        if not result.success:
            logger.info("[Tasks] Scheduled run did not complete", task_id=task_id,
                        error=result.error_message)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)

    def _rejected(self, task_id: str, message: str, start_time: float) -> TaskExecutionResult:
        return TaskExecutionResult(
            task_id=task_id,
            status=TaskStatus.FAILED.value,
            error_message=message,
            duration_ms=self._elapsed_ms(start_time),
        )
