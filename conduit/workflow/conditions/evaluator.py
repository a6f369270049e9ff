"""
Conduit Condition Evaluator

Evaluates step conditions against variables and prior step outputs.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

import structlog

from conduit.workflow.conditions.operators import OperatorRegistry
from conduit.workflow.types import StepCondition

logger = structlog.get_logger(__name__)

_MISSING = object()


class ConditionEvaluator:
    """
    Evaluates workflow conditions.

    The left operand is looked up by name, first in the run-time variables
    and then in the results of prior steps. The right operand is a literal.
    Evaluation never raises: malformed conditions and operator errors
    evaluate to False.
    """

    def __init__(self, operators: Optional[OperatorRegistry] = None):
        self.operators = operators or OperatorRegistry()

    def evaluate(
        self,
        condition: Union[StepCondition, Mapping[str, Any], None],
        variables: Mapping[str, Any],
        results: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Evaluate a condition.

        Args:
            condition: Condition to evaluate (dataclass or plain mapping)
            variables: Run-time variables
            results: Outputs of prior steps keyed by step id

        Returns:
            Boolean result
        """
        if condition is None:
            return False

        if not isinstance(condition, StepCondition):
            if not isinstance(condition, Mapping):
                logger.warning("condition_malformed", condition=repr(condition))
                return False
            condition = StepCondition.from_dict(dict(condition))

        left = self.lookup(condition.field, variables, results)

        try:
            result = self.operators.evaluate(condition.operator, left, condition.value)
        except Exception as e:
            logger.error(
                "condition_error",
                field=condition.field,
                operator=condition.operator,
                error=str(e),
            )
            return False

        logger.debug(
            "condition_evaluated",
            field=condition.field,
            operator=condition.operator,
            result=result,
        )

        return result

    @staticmethod
    def lookup(
        name: str,
        variables: Mapping[str, Any],
        results: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Resolve a name from variables, then prior results; None if absent."""
        value = variables.get(name, _MISSING) if variables is not None else _MISSING
        if value is _MISSING and results is not None:
            value = results.get(name, _MISSING)
        return None if value is _MISSING else value
