"""
Conduit Exceptions

Errors raised by the workflow engine's public API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from conduit.workflow.types import WorkflowExecution


class ConduitError(Exception):
    """Base class for all Conduit errors."""
    pass


class WorkflowValidationError(ConduitError, ValueError):
    """Raised when a workflow definition fails structural validation."""

    def __init__(self, workflow_id: str, errors: List[str]):
        self.workflow_id = workflow_id
        self.errors = errors
        super().__init__(f"Invalid workflow {workflow_id}: {errors}")


class WorkflowNotFoundError(ConduitError, ValueError):
    """Raised when a workflow id is not registered."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class ExecutionNotFoundError(ConduitError, ValueError):
    """Raised when an execution id is unknown."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class UnknownStepTypeError(ConduitError, ValueError):
    """Raised when no handler is registered for a step type."""

    def __init__(self, step_type: str, step_id: Optional[str] = None):
        self.step_type = step_type
        self.step_id = step_id
        where = f" (step {step_id})" if step_id else ""
        super().__init__(f"Unsupported step type: {step_type}{where}")


class StepExecutionError(ConduitError):
    """
    Generic failure of a step handler.

    Collaborator, business-logic and malformed-config failures are all
    surfaced as this error; the message of the underlying failure is kept
    so it can be classified.
    """

    def __init__(self, message: str, step_type: Optional[str] = None):
        self.step_type = step_type
        super().__init__(message)


class ExecutionFailedError(ConduitError):
    """Raised by execute(raise_on_failure=True) when a run ends failed."""

    def __init__(self, execution: "WorkflowExecution"):
        self.execution = execution
        super().__init__(
            f"Workflow execution {execution.id} failed: {execution.error}"
        )
