"""
Conduit Agent Step Handler

Delegate tasks to agents from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.exceptions import StepExecutionError
from conduit.workflow.actions.collaborators import DelegationBackend
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class AgentStepHandler(BaseStepHandler):
    """
    Handler for agent-delegate steps.

    Hands a task description and the required capability tags to the
    delegation backend and returns whatever the assigned agent produced.
    """

    step_type = StepType.AGENT_DELEGATE
    required_keys = ("task",)

    def __init__(self, backend: DelegationBackend):
        self.backend = backend

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute an agent delegation."""
        task = self.require(config, "task")
        capabilities = config.get("capabilities") or []
        if isinstance(capabilities, str):
            capabilities = [c.strip() for c in capabilities.split(",") if c.strip()]
        if not isinstance(capabilities, list):
            raise StepExecutionError(
                "Invalid config for agent-delegate: 'capabilities' must be a list",
                step_type=self.step_type.value,
            )

        logger.info("delegating_task", capabilities=capabilities)

        return await self.call(self.backend.delegate_task, str(task), capabilities)
