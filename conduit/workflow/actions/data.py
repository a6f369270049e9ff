"""
Conduit Data Transform Step Handler

map/filter/reduce over the output of a prior step.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.exceptions import StepExecutionError
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.conditions.evaluator import ConditionEvaluator
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class DataTransformStepHandler(BaseStepHandler):
    """
    Handler for data-transform steps.

    Config:
    - source_step_id: step whose output is transformed
    - operation: map | filter | reduce (anything else returns the data as is)
    - mapping: {target_key: source_key} for map
    - condition: {field, operator, value} for filter, evaluated per item
    - field: numeric field summed by reduce
    """

    step_type = StepType.DATA_TRANSFORM
    required_keys = ("source_step_id",)

    def __init__(self, evaluator: ConditionEvaluator):
        self.evaluator = evaluator

    def validate_config(self, config: Mapping[str, Any]) -> List[str]:
        config = config or {}
        if "source_step_id" in config or "sourceStepId" in config:
            return []
        return ["missing required config key 'source_step_id'"]

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a data transform."""
        source = config.get("source_step_id", config.get("sourceStepId"))
        if source not in results:
            raise StepExecutionError(
                f"Source step {source} not found",
                step_type=self.step_type.value,
            )

        data = results[source]
        operation = config.get("operation")

        logger.debug("data_transform", source=source, operation=operation)

        if operation == "map":
            mapping = config.get("mapping") or {}
            if isinstance(data, list):
                return [self._apply_mapping(item, mapping) for item in data]
            return self._apply_mapping(data, mapping)

        if operation == "filter":
            if not isinstance(data, list):
                return data
            condition = config.get("condition")
            return [
                item for item in data
                if isinstance(item, Mapping) and self.evaluator.evaluate(condition, item, results)
            ]

        if operation == "reduce":
            if not isinstance(data, list):
                return data
            field = config.get("field")
            return sum(self._number(item, field) for item in data)

        return data

    @staticmethod
    def _apply_mapping(item: Any, mapping: Mapping[str, str]) -> Dict[str, Any]:
        if not isinstance(item, Mapping):
            return {target: None for target in mapping}
        return {target: item.get(source) for target, source in mapping.items()}

    @staticmethod
    def _number(item: Any, field: Any) -> float:
        if not isinstance(item, Mapping):
            return 0
        value = item.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return value
