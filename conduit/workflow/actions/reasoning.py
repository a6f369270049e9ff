"""
Conduit Reasoning Step Handler

Send prompts to the reasoning backend from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.workflow.actions.collaborators import ReasoningBackend
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class ReasoningStepHandler(BaseStepHandler):
    """Handler for reasoning-call steps."""

    step_type = StepType.REASONING_CALL
    required_keys = ("prompt",)

    def __init__(self, backend: ReasoningBackend):
        self.backend = backend

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a reasoning call."""
        prompt = self.require(config, "prompt")
        rag_enabled = bool(config.get("rag_enabled", False))
        delegation_enabled = bool(config.get("delegation_enabled", False))

        logger.info(
            "reasoning_call",
            prompt_length=len(str(prompt)),
            rag_enabled=rag_enabled,
            delegation_enabled=delegation_enabled,
        )

        answer = await self.call(
            self.backend.reason,
            str(prompt),
            rag_enabled=rag_enabled,
            delegation_enabled=delegation_enabled,
        )

        return {"success": True, "answer": answer}
