"""
Conduit Condition Operators

Comparison operators for step gating and condition steps.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Union

import structlog

from conduit.workflow.types import ConditionOperator

logger = structlog.get_logger(__name__)

OperatorFunc = Callable[[Any, Any], bool]


class OperatorRegistry:
    """
    Registry of comparison operators.

    Provides the standard operators and allows custom operator registration.
    Operators this registry does not know evaluate to False.
    """

    def __init__(self):
        self._operators: Dict[str, OperatorFunc] = {}
        self._register_builtin_operators()

    def _register_builtin_operators(self) -> None:
        """Register built-in operators."""
        self._operators[ConditionOperator.EQUALS.value] = self._equals
        self._operators[ConditionOperator.NOT_EQUALS.value] = self._not_equals
        self._operators[ConditionOperator.CONTAINS.value] = self._contains
        self._operators[ConditionOperator.GREATER_THAN.value] = self._greater_than
        self._operators[ConditionOperator.LESS_THAN.value] = self._less_than
        self._operators[ConditionOperator.EXISTS.value] = self._exists

    def register(
        self,
        operator: Union[ConditionOperator, str],
        func: OperatorFunc,
    ) -> None:
        """Register a custom operator."""
        self._operators[_key(operator)] = func

    def get(self, operator: Union[ConditionOperator, str]) -> Optional[OperatorFunc]:
        return self._operators.get(_key(operator))

    def evaluate(
        self,
        operator: Union[ConditionOperator, str],
        left: Any,
        right: Any,
    ) -> bool:
        """Evaluate an operator."""
        func = self.get(operator)
        if not func:
            logger.warning("unknown_operator", operator=_key(operator))
            return False

        return bool(func(left, right))

    # === Operator Implementations ===

    @staticmethod
    def _equals(left: Any, right: Any) -> bool:
        """Strict equality, no type coercion."""
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return left == right

    @staticmethod
    def _not_equals(left: Any, right: Any) -> bool:
        return not OperatorRegistry._equals(left, right)

    @staticmethod
    def _contains(left: Any, right: Any) -> bool:
        """String containment after coercing both sides to str."""
        if left is None:
            return False
        return str(right) in str(left)

    @staticmethod
    def _greater_than(left: Any, right: Any) -> bool:
        numbers = _as_numbers(left, right)
        return numbers is not None and numbers[0] > numbers[1]

    @staticmethod
    def _less_than(left: Any, right: Any) -> bool:
        numbers = _as_numbers(left, right)
        return numbers is not None and numbers[0] < numbers[1]

    @staticmethod
    def _exists(left: Any, right: Any) -> bool:
        return left is not None


def _key(operator: Union[ConditionOperator, str]) -> str:
    if isinstance(operator, ConditionOperator):
        return operator.value
    return str(operator)


def _as_numbers(left: Any, right: Any) -> Optional[tuple]:
    """Numeric coercion; None when either side is not a number."""
    try:
        return float(left), float(right)
    except (TypeError, ValueError):
        return None


# Module-level registry for compare()
_operator_registry = OperatorRegistry()


def compare(left: Any, operator: Union[ConditionOperator, str], right: Any) -> bool:
    """
    Compare two values using an operator.

    Args:
        left: Left operand
        operator: Comparison operator
        right: Right operand

    Returns:
        Comparison result
    """
    return _operator_registry.evaluate(operator, left, right)
