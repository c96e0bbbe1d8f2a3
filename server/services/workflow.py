"""Workflow Service - Facade for workflow definitions and execution.

Thin facade over:
- GraphValidator: structural validation on create/update
- Database: workflow persistence
- WorkflowEngine: execution records and background runs

Also tracks the observed output shape of each workflow so callers can
discover what a workflow actually returns.
"""

from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING

from core.errors import WorkflowAccessDenied, WorkflowNotFound
from core.logging import get_logger
from models.database import Workflow, WorkflowExecution
from models.workflow import WorkflowDefinition
from services.execution import GraphValidator

if TYPE_CHECKING:
    from core.database import Database
    from services.execution import WorkflowEngine
    from services.tool_registry import ToolRegistry

logger = get_logger(__name__)

DefinitionInput = Union[WorkflowDefinition, Dict[str, Any]]

UPDATABLE_FIELDS = frozenset([
    "name",
    "description",
    "definition",
    "input_schema",
    "output_schema",
    "is_public",
    "category",
    "tags",
])


def infer_schema(data: Any) -> Dict[str, Any]:
    """Infer a JSON-schema-like description of a value.

    Examples:
        >>> infer_schema({"ids": [1, 2]})
        {'type': 'object', 'properties': {'ids': {'type': 'array', 'items': {'type': 'number'}}}}
    """
    if data is None:
        return {"type": "null"}
    if isinstance(data, bool):
        return {"type": "boolean"}
    if isinstance(data, (int, float)):
        return {"type": "number"}
    if isinstance(data, str):
        return {"type": "string"}
    if isinstance(data, (list, tuple)):
        return {
            "type": "array",
            "items": infer_schema(data[0]) if data else {"type": "any"},
        }
    if isinstance(data, dict):
        return {
            "type": "object",
            "properties": {str(key): infer_schema(value) for key, value in data.items()},
        }
    return {"type": "any"}


class WorkflowService:
    """Workflow CRUD, discovery and execution entry points."""

    def __init__(
        self,
        database: "Database",
        tool_registry: "ToolRegistry",
        engine: "WorkflowEngine",
        validator: Optional[GraphValidator] = None,
    ):
        self.database = database
        self.engine = engine
        self.validator = validator or GraphValidator(tool_registry)

    @staticmethod
    def _as_definition(definition: DefinitionInput) -> WorkflowDefinition:
        if isinstance(definition, WorkflowDefinition):
            return definition
        return WorkflowDefinition.model_validate(definition)

    # =========================================================================
    # DEFINITIONS
    # =========================================================================

    async def create_workflow(
        self,
        definition: DefinitionInput,
        owner_id: str,
        owner_type: str,
        name: str,
        description: Optional[str] = None,
        input_schema: Optional[Dict[str, Any]] = None,
        output_schema: Optional[Dict[str, Any]] = None,
        is_public: bool = False,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Workflow:
        """Validate and persist a new workflow.

        Raises:
            ValidationError: if the definition is structurally invalid
        """
        validated = await self.validator.validate(self._as_definition(definition))

        workflow = await self.database.create_workflow(Workflow(
            name=name,
            description=description,
            owner_id=owner_id,
            owner_type=owner_type,
            definition=validated.to_storage(),
            input_schema=input_schema,
            output_schema=output_schema,
            is_public=is_public,
            category=category,
            tags=list(tags or []),
        ))
        logger.info("[Workflows] Created workflow", workflow_id=workflow.workflow_id,
                    owner_id=owner_id, nodes=len(validated.nodes))
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.database.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        return workflow

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition:
        workflow = await self.get_workflow(workflow_id)
        return WorkflowDefinition.model_validate(workflow.definition or {})

    async def list_workflows(self, owner_id: str, owner_type: Optional[str] = None) -> List[Workflow]:
        return await self.database.list_workflows(owner_id, owner_type)

    async def discover_public_workflows(
        self,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        limit: int = 50,
    ) -> List[Workflow]:
        """Public workflows, most executed first, optionally sharing any of ``tags``."""
        workflows = await self.database.list_public_workflows(category)
        if tags:
            wanted = set(tags)
            workflows = [w for w in workflows if wanted.intersection(w.tags or [])]
        return workflows[:limit]

    async def update_workflow(self, workflow_id: str, **changes) -> Workflow:
        """Update workflow fields; a new definition is re-validated first.

        Raises:
            WorkflowNotFound: if the workflow does not exist
            ValidationError: if the new definition is invalid
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update workflow fields: {sorted(unknown)}")
        if changes.get("definition") is not None:
            await self.get_workflow(workflow_id)
            validated = await self.validator.validate(self._as_definition(changes["definition"]))
            changes["definition"] = validated.to_storage()

        updated = await self.database.update_workflow(workflow_id, **changes)
        if updated is None:
            raise WorkflowNotFound(workflow_id)

        logger.info("[Workflows] Updated workflow", workflow_id=workflow_id, fields=list(changes))
        return updated

    async def delete_workflow(self, workflow_id: str) -> None:
        if not await self.database.delete_workflow(workflow_id):
            raise WorkflowNotFound(workflow_id)
        logger.info("[Workflows] Deleted workflow", workflow_id=workflow_id)

    async def fork_workflow(
        self,
        workflow_id: str,
        owner_id: str,
        owner_type: str,
        name: Optional[str] = None,
        modifications: Optional[Dict[str, Any]] = None,
    ) -> Workflow:
        """Copy a workflow to a new owner as a private workflow.

        Raises:
            WorkflowAccessDenied: if the original is private and owned by someone else
        """
        original = await self.get_workflow(workflow_id)
        if not original.is_public and original.owner_id != owner_id:
            raise WorkflowAccessDenied(workflow_id, owner_id)

        definition = {**(original.definition or {}), **(modifications or {})}
        forked = await self.create_workflow(
            definition,
            owner_id=owner_id,
            owner_type=owner_type,
            name=name or f"{original.name} (Fork)",
            description=original.description,
            input_schema=original.input_schema,
            output_schema=original.output_schema,
            is_public=False,
            category=original.category,
            tags=original.tags,
        )
        logger.info("[Workflows] Forked workflow", source_id=workflow_id, workflow_id=forked.workflow_id)
        return forked

    # =========================================================================
    # OUTPUT SCHEMA
    # =========================================================================

    async def capture_actual_output(self, workflow_id: str, output_data: Any) -> bool:
        """Record the inferred schema of a real output unless the schema is locked."""
        workflow = await self.get_workflow(workflow_id)
        if workflow.schema_locked:
            return False

        await self.database.update_workflow(workflow_id, actual_output_schema=infer_schema(output_data))
        logger.debug("[Workflows] Captured actual output schema", workflow_id=workflow_id)
        return True

    async def lock_output_schema(self, workflow_id: str) -> Workflow:
        workflow = await self.get_workflow(workflow_id)
        changes: Dict[str, Any] = {"schema_locked": True}
        if workflow.output_schema is None and workflow.actual_output_schema is not None:
            changes["output_schema"] = workflow.actual_output_schema
        return await self.database.update_workflow(workflow_id, **changes)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_workflow(
        self,
        workflow_id: str,
        agent_id: Optional[str] = None,
        session_id: Optional[str] = None,
        task_id: Optional[str] = None,
        input_data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> str:
        return await self.engine.execute_workflow(
            workflow_id,
            agent_id=agent_id,
            session_id=session_id,
            task_id=task_id,
            input_data=input_data,
            user_id=user_id,
        )

    async def get_execution_status(self, execution_id: str) -> WorkflowExecution:
        return await self.engine.get_execution_status(execution_id)

    async def cancel_execution(self, execution_id: str) -> bool:
        return await self.engine.cancel_execution(execution_id)

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[WorkflowExecution]:
        await self.get_workflow(workflow_id)
        return await self.engine.list_executions(workflow_id, limit=limit)

    async def wait_for_completion(self, execution_id: str, timeout: Optional[float] = None,
                                  poll_interval: Optional[float] = None) -> WorkflowExecution:
        return await self.engine.wait_for_completion(execution_id, timeout=timeout,
                                                     poll_interval=poll_interval)
