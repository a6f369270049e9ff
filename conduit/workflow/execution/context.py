"""
Conduit Execution Context

Per-execution state shared by the engine and the step handlers:
variables, prior step results, placeholder resolution and the cooperative
pause/cancel checkpoints.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from conduit.workflow.types import WorkflowDefinition, WorkflowExecution, WorkflowStep

logger = structlog.get_logger(__name__)

_MISSING = object()


class ExecutionContext:
    """
    Execution context for a single workflow run.

    Features:
    - Whole-value ``${name}`` placeholder resolution
    - Step output table keyed by step id
    - Cooperative control checkpoints (pause/cancel)
    - Interruptible sleep for retry backoff

    Placeholders are only recognised when they make up the entire string
    value; ``"prefix ${name}"`` is left as is.
    """

    PLACEHOLDER_PATTERN = re.compile(r"^\$\{([^{}]+)\}$")

    def __init__(
        self,
        execution: "WorkflowExecution",
        definition: "WorkflowDefinition",
        steps: Optional[List["WorkflowStep"]] = None,
    ):
        self.execution = execution
        self.definition = definition
        # Traversal order; execution.steps records are aligned with it
        self.steps: List["WorkflowStep"] = list(steps if steps is not None else definition.steps)
        self.current_step_id: Optional[str] = None
        self.cursor: int = 0
        self.rollbacks: int = 0

        self._wakeup = asyncio.Event()

    # === Data Access ===

    @property
    def variables(self) -> Dict[str, Any]:
        return self.execution.variables

    @property
    def results(self) -> Dict[str, Any]:
        return self.execution.results

    def set_step_output(self, step_id: str, output: Any) -> None:
        """Store a step output for later placeholder resolution."""
        self.execution.results[step_id] = output
        logger.debug("context_step_output", step_id=step_id)

    def get_step_output(self, step_id: str, default: Any = None) -> Any:
        return self.execution.results.get(step_id, default)

    def drop_step_output(self, step_id: str) -> None:
        self.execution.results.pop(step_id, None)

    def lookup(self, name: str) -> Any:
        """Variables first, then prior step outputs; _MISSING if neither has it."""
        if name in self.execution.variables:
            return self.execution.variables[name]
        if name in self.execution.results:
            return self.execution.results[name]
        return _MISSING

    # === Placeholder Resolution ===

    def resolve(self, value: Any) -> Any:
        """
        Resolve placeholders in a value.

        Strings of the exact form ``${name}`` are replaced by the variable or
        prior step output called ``name``; unknown names stay literal.
        Dicts and lists are resolved recursively.
        """
        if isinstance(value, str):
            return self._resolve_string(value)

        if isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}

        if isinstance(value, list):
            return [self.resolve(item) for item in value]

        return value

    def resolve_config(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        """Resolve every value of a step config."""
        return {key: self.resolve(value) for key, value in (config or {}).items()}

    def _resolve_string(self, value: str) -> Any:
        match = self.PLACEHOLDER_PATTERN.match(value)
        if not match:
            return value

        resolved = self.lookup(match.group(1).strip())
        if resolved is _MISSING:
            logger.debug("placeholder_unresolved", placeholder=value)
            return value
        return resolved

    # === Control ===

    def interrupt(self) -> None:
        """Wake any pending backoff sleep so control flags are seen promptly."""
        self._wakeup.set()

    @property
    def cancel_requested(self) -> bool:
        return self.execution.cancel_requested

    @property
    def pause_requested(self) -> bool:
        return self.execution.pause_requested

    def should_stop(self) -> bool:
        """True when the run loop must not start further work."""
        return self.execution.cancel_requested or self.execution.pause_requested

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for a backoff interval.

        Returns False if the sleep was interrupted by a pause or cancel
        request, True if the full interval elapsed.
        """
        if self.should_stop():
            return False
        if seconds <= 0:
            return True

        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return not self.should_stop()
