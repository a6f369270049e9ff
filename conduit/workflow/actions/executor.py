"""
Conduit Step Dispatcher

Routes each workflow step to the handler registered for its type.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.exceptions import StepExecutionError, UnknownStepTypeError
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.conditions.evaluator import ConditionEvaluator
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class BaseStepHandler:
    """
    Base class for step handlers.

    A handler receives the step config with placeholders already resolved,
    the run-time variables and the outputs of prior steps keyed by step id.
    """

    step_type: StepType
    required_keys: tuple = ()

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute the step."""
        raise NotImplementedError

    def validate_config(self, config: Mapping[str, Any]) -> List[str]:
        """Return config problems detectable before the run."""
        return [
            f"missing required config key '{key}'"
            for key in self.required_keys
            if key not in (config or {})
        ]

    def require(self, config: Mapping[str, Any], key: str) -> Any:
        """Fetch a required config value or fail the step."""
        value = config.get(key)
        if value is None or value == "":
            raise StepExecutionError(
                f"Invalid config for {self.step_type.value}: '{key}' is required",
                step_type=self.step_type.value,
            )
        return value

    @staticmethod
    async def call(func: Any, *args: Any, **kwargs: Any) -> Any:
        """Call a collaborator method that may be sync or async."""
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


class StepDispatcher:
    """
    Dispatches steps to handlers.

    Every step type maps to exactly one handler. Any failure raised by a
    handler reaches the engine as a StepExecutionError carrying the
    original message.
    """

    def __init__(self):
        self._handlers: Dict[StepType, BaseStepHandler] = {}

    def register_handler(self, handler: BaseStepHandler) -> None:
        """Register (or replace) the handler for its step type."""
        self._handlers[handler.step_type] = handler
        logger.debug("handler_registered", step_type=handler.step_type.value)

    def get_handler(self, step_type: StepType) -> Optional[BaseStepHandler]:
        """Get a handler by step type."""
        return self._handlers.get(step_type)

    def supports(self, step_type: StepType) -> bool:
        return step_type in self._handlers

    @property
    def step_types(self) -> List[StepType]:
        return list(self._handlers)

    def validate_config(self, step_type: StepType, config: Mapping[str, Any]) -> List[str]:
        handler = self._handlers.get(step_type)
        if not handler:
            return [f"no handler registered for step type {step_type.value}"]
        return handler.validate_config(config)

    async def dispatch(
        self,
        step_type: StepType,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """
        Execute a step through its handler.

        Raises:
            UnknownStepTypeError: no handler for the type
            StepExecutionError: the handler failed
        """
        handler = self._handlers.get(step_type)
        if not handler:
            raise UnknownStepTypeError(getattr(step_type, "value", str(step_type)))

        try:
            result = await handler.execute(config, variables, results, context=context)
        except StepExecutionError:
            raise
        except Exception as e:
            logger.error(
                "step_handler_error",
                step_type=step_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StepExecutionError(str(e) or type(e).__name__, step_type=step_type.value) from e

        logger.debug("step_dispatched", step_type=step_type.value)
        return result


# === Built-in Handlers ===


class ConditionStepHandler(BaseStepHandler):
    """Handler for condition steps: evaluates ``config['condition']``."""

    step_type = StepType.CONDITION
    required_keys = ("condition",)

    def __init__(self, evaluator: "ConditionEvaluator"):
        self.evaluator = evaluator

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a condition step."""
        return self.evaluator.evaluate(config.get("condition"), variables, results)
