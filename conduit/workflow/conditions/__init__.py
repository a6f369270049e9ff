"""
Conduit Workflow Conditions

Condition evaluation for step gating:
- Comparison operators
- Variable and prior-output lookup
"""

from conduit.workflow.conditions.evaluator import ConditionEvaluator
from conduit.workflow.conditions.operators import OperatorRegistry, compare

__all__ = [
    "ConditionEvaluator",
    "OperatorRegistry",
    "compare",
]
