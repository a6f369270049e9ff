"""
Conduit Tool Step Handler

Invoke tools from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.exceptions import StepExecutionError
from conduit.workflow.actions.collaborators import ToolBackend
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class ToolStepHandler(BaseStepHandler):
    """Handler for tool-invoke steps."""

    step_type = StepType.TOOL_INVOKE
    required_keys = ("tool_name",)

    def __init__(self, backend: ToolBackend):
        self.backend = backend

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a tool call."""
        tool_name = self.require(config, "tool_name")
        params = config.get("parameters") or {}
        if not isinstance(params, dict):
            raise StepExecutionError(
                "Invalid config for tool-invoke: 'parameters' must be a mapping",
                step_type=self.step_type.value,
            )

        logger.info(
            "executing_tool",
            tool_name=tool_name,
            params_keys=list(params.keys()),
        )

        return await self.call(self.backend.call_tool, str(tool_name), params)
