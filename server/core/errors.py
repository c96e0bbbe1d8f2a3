"""Orchestrator exception hierarchy."""

from typing import List, Optional, Sequence


class OrchestratorError(Exception):
    """Base exception for all orchestration errors."""


# =============================================================================
# VALIDATION (raised at create/update time, never during execution)
# =============================================================================

class ValidationError(OrchestratorError):
    """A workflow definition or task configuration is invalid."""


class CycleDetected(ValidationError):
    """The workflow graph contains a cycle."""

    def __init__(self, cycle: Optional[Sequence[str]] = None):
        self.cycle: List[str] = list(cycle or [])
        if self.cycle:
            super().__init__(f"Workflow contains a cycle: {' -> '.join(self.cycle)}")
        else:
            super().__init__("Workflow contains a cycle")


class UnknownNodeReference(ValidationError):
    """An edge or node reference names a node that does not exist."""

    def __init__(self, node_id: str, referenced_by: str = "edge"):
        self.node_id = node_id
        self.referenced_by = referenced_by
        super().__init__(f"Unknown node '{node_id}' referenced by {referenced_by}")


class MissingNodeReference(UnknownNodeReference):
    """startNodeId or endNodeId is not among the workflow nodes."""


class DuplicateNodeId(ValidationError):

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id '{node_id}'")


class UnreachableEndNode(ValidationError):
    """The end node cannot be reached from the start node."""

    def __init__(self, start_node_id: str, end_node_id: str):
        self.start_node_id = start_node_id
        self.end_node_id = end_node_id
        super().__init__(f"End node '{end_node_id}' is not reachable from start node '{start_node_id}'")


class UnknownTool(ValidationError):
    """A tool node references a tool that cannot be resolved."""

    def __init__(self, tool_id: Optional[str], node_id: str):
        self.tool_id = tool_id
        self.node_id = node_id
        super().__init__(f"Tool '{tool_id}' not found for node '{node_id}'")


class InvalidCronExpression(ValidationError):

    def __init__(self, expression: Optional[str], reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


class UnknownDependency(ValidationError):

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Dependency task {task_id} not found")


class InvalidTaskConfiguration(ValidationError):
    """Task fields are inconsistent with its execution mode."""


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(OrchestratorError):
    """A workflow, execution or task id does not exist."""

    kind = "Resource"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"{self.kind} {resource_id} not found")


class WorkflowNotFound(NotFoundError):
    kind = "Workflow"


class ExecutionNotFound(NotFoundError):
    kind = "Execution"


class TaskNotFound(NotFoundError):
    kind = "Task"


class WorkflowAccessDenied(OrchestratorError):
    """The caller may not read or fork a private workflow."""

    def __init__(self, workflow_id: str, owner_id: str):
        self.workflow_id = workflow_id
        self.owner_id = owner_id
        super().__init__(f"Cannot fork private workflow {workflow_id} without access")


# =============================================================================
# EXECUTION
# =============================================================================

class NodeExecutionError(OrchestratorError):
    """A node failed and the workflow does not continue on error."""

    def __init__(self, node_id: str, cause: str):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Node {node_id} failed: {cause}")


NodeExecutionFailed = NodeExecutionError


class ExecutionTimeout(OrchestratorError):

    def __init__(self, execution_id: str, timeout_ms: Optional[int] = None, message: Optional[str] = None):
        self.execution_id = execution_id
        self.timeout_ms = timeout_ms
        if message is None:
            message = f"Workflow execution timed out after {timeout_ms}ms" if timeout_ms else "Workflow execution timeout"
        super().__init__(message)


class WorkflowExecutionFailed(OrchestratorError):
    """A workflow execution ended failed or cancelled."""

    def __init__(self, execution_id: str, status: str, message: Optional[str] = None):
        self.execution_id = execution_id
        self.status = status
        super().__init__(message or f"Workflow execution {status}")


class DependencyNotSatisfied(OrchestratorError):
    """Some dependencies of a task have not completed yet."""

    def __init__(self, task_id: str, pending: Sequence[str]):
        self.task_id = task_id
        self.pending = list(pending)
        super().__init__("Dependencies not completed")
