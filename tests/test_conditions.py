"""
Tests for condition operators and evaluation.
"""

import pytest

from conduit.workflow.conditions import ConditionEvaluator, OperatorRegistry, compare
from conduit.workflow.types import ConditionOperator, StepCondition


class TestOperators:
    """Tests for the built-in operators."""

    @pytest.mark.parametrize(
        "left,operator,right,expected",
        [
            ("a", "equals", "a", True),
            (1, "equals", "1", False),
            (1, "equals", True, False),
            ("a", "not_equals", "b", True),
            ("hello world", "contains", "world", True),
            (12345, "contains", 234, True),
            (None, "contains", "x", False),
            (10, "greater_than", 5, True),
            ("10", "greater_than", "5", True),
            ("abc", "greater_than", 5, False),
            (1, "less_than", 2, True),
            (None, "less_than", 2, False),
            (0, "exists", None, True),
            (None, "exists", None, False),
        ],
    )
    def test_compare(self, left, operator, right, expected):
        assert compare(left, operator, right) is expected

    def test_enum_operator(self):
        assert compare(3, ConditionOperator.GREATER_THAN, 2)

    def test_unknown_operator_is_false(self):
        assert compare("a", "matches", "a") is False

    def test_custom_operator(self):
        registry = OperatorRegistry()
        registry.register("starts_with", lambda a, b: str(a).startswith(str(b)))
        assert registry.evaluate("starts_with", "conduit", "con")


class TestConditionEvaluator:
    """Tests for condition evaluation against variables and results."""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()

    def test_variables_take_precedence(self):
        condition = StepCondition(field="status", operator="equals", value="ok")
        assert self.evaluator.evaluate(condition, {"status": "ok"}, {"status": "bad"})
        assert not self.evaluator.evaluate(condition, {"status": "bad"}, {"status": "ok"})

    def test_falls_back_to_results(self):
        condition = StepCondition(field="search", operator="exists")
        assert self.evaluator.evaluate(condition, {}, {"search": []})

    def test_falsy_variable_is_used(self):
        condition = StepCondition(field="count", operator="equals", value=0)
        assert self.evaluator.evaluate(condition, {"count": 0}, {"count": 5})

    def test_missing_field(self):
        condition = StepCondition(field="missing", operator="exists")
        assert not self.evaluator.evaluate(condition, {}, {})

    def test_mapping_condition(self):
        condition = {"field": "score", "operator": "greater_than", "value": 0.5}
        assert self.evaluator.evaluate(condition, {"score": 0.9})

    def test_malformed_condition(self):
        assert not self.evaluator.evaluate(None, {})
        assert not self.evaluator.evaluate("score > 1", {"score": 2})

    def test_operator_error_is_false(self):
        registry = OperatorRegistry()

        def broken(a, b):
            raise RuntimeError("boom")

        registry.register("broken", broken)
        evaluator = ConditionEvaluator(operators=registry)
        condition = StepCondition(field="x", operator="broken", value=1)
        assert evaluator.evaluate(condition, {"x": 1}) is False
