"""Shared fixtures for orchestrator tests.

Provides:
- Per-test SQLite file database (background runs and the test hold separate connections)
- Tool registry, engine and services wired the way the container wires them
- A RecordingTool helper that captures the inputs each node receives
"""

from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio

from core.config import Settings
from core.database import Database
from services.agent_runtime import QueuedAgentRuntime
from services.execution import WorkflowEngine
from services.node_executor import ToolNodeExecutor
from services.scheduler import CronScheduler
from services.tasks import TaskCoordinator
from services.tool_registry import ToolRegistry
from services.workflow import WorkflowService


# ---------------------------------------------------------------------------
# Settings and database
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orchestrator.db'}",
        workflow_timeout_ms=5_000,
        task_poll_interval=0.05,
        task_wait_timeout=5,
        http_tool_timeout=5,
    )


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Fresh database per test."""
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def agent_runtime() -> QueuedAgentRuntime:
    return QueuedAgentRuntime()


@pytest.fixture
def tool_registry(database: Database) -> ToolRegistry:
    return ToolRegistry(database)


@pytest.fixture
def node_executor(agent_runtime, settings) -> ToolNodeExecutor:
    return ToolNodeExecutor(agent_runtime=agent_runtime, settings=settings)


@pytest_asyncio.fixture
async def engine(database, tool_registry, node_executor, settings) -> AsyncGenerator[WorkflowEngine, None]:
    workflow_engine = WorkflowEngine(database, tool_registry, node_executor, settings)
    yield workflow_engine
    await workflow_engine.shutdown()


@pytest.fixture
def workflow_service(database, tool_registry, engine) -> WorkflowService:
    return WorkflowService(database, tool_registry, engine)


@pytest.fixture
def cron_scheduler() -> CronScheduler:
    # Never started: jobs are registered but do not fire during tests
    return CronScheduler(timezone="UTC")


@pytest.fixture
def task_coordinator(database, workflow_service, cron_scheduler, agent_runtime, settings) -> TaskCoordinator:
    return TaskCoordinator(database, workflow_service, cron_scheduler, agent_runtime, settings)


# ---------------------------------------------------------------------------
# Tool helpers
# ---------------------------------------------------------------------------

class RecordingTool:
    """Function tool that records the inputs it was called with."""

    def __init__(self, output: Any = None, error: Optional[str] = None):
        self.output = output
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, inputs: Dict[str, Any], context) -> Any:
        self.calls.append(dict(inputs))
        if self.error:
            raise RuntimeError(self.error)
        return self.output

    @property
    def last_inputs(self) -> Optional[Dict[str, Any]]:
        return self.calls[-1] if self.calls else None


@pytest.fixture
def register_tool(tool_registry: ToolRegistry):
    """Register a RecordingTool under an id and return it."""

    def _register(tool_id: str, output: Any = None, error: Optional[str] = None) -> RecordingTool:
        tool = RecordingTool(output=output, error=error)
        tool_registry.register_function(tool_id, tool, name=tool_id.title())
        return tool

    return _register


def tool_node(node_id: str, tool_id: Optional[str] = None, **config) -> Dict[str, Any]:
    return {"id": node_id, "type": "tool", "toolId": tool_id or node_id, "config": config}


def chain_definition(*node_ids: str) -> Dict[str, Any]:
    """Linear tool chain whose node ids double as tool ids."""
    return {
        "startNodeId": node_ids[0],
        "endNodeId": node_ids[-1],
        "nodes": [tool_node(node_id) for node_id in node_ids],
        "edges": [
            {"source": source, "target": target}
            for source, target in zip(node_ids, node_ids[1:])
        ],
    }
