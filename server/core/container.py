"""Dependency injection container for the orchestrator."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from services.agent_runtime import QueuedAgentRuntime
from services.execution import WorkflowEngine
from services.node_executor import ToolNodeExecutor
from services.scheduler import CronScheduler
from services.tasks import TaskCoordinator
from services.tool_registry import ToolRegistry
from services.workflow import WorkflowService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Tools and invocation
    agent_runtime = providers.Singleton(
        QueuedAgentRuntime,
    )

    tool_registry = providers.Singleton(
        ToolRegistry,
        database=database
    )

    node_executor = providers.Singleton(
        ToolNodeExecutor,
        agent_runtime=agent_runtime,
        settings=settings
    )

    # Workflows
    workflow_engine = providers.Singleton(
        WorkflowEngine,
        database=database,
        tool_registry=tool_registry,
        node_executor=node_executor,
        settings=settings
    )

    workflow_service = providers.Singleton(
        WorkflowService,
        database=database,
        tool_registry=tool_registry,
        engine=workflow_engine
    )

    # Tasks and scheduling
    cron_scheduler = providers.Singleton(
        CronScheduler,
        timezone=settings.provided.scheduler_timezone,
        misfire_grace_time=settings.provided.scheduler_misfire_grace_time
    )

    task_coordinator = providers.Singleton(
        TaskCoordinator,
        database=database,
        workflow_service=workflow_service,
        cron_scheduler=cron_scheduler,
        agent_runtime=agent_runtime,
        settings=settings
    )


# Global container instance
container = Container()
