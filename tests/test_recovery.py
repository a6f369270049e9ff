"""
Tests for error classification and recovery.
"""

import pytest

from conduit.workflow.events import ERROR_HANDLER_SOURCE, EventFeed
from conduit.workflow.execution import ExecutionContext
from conduit.workflow.recovery import (
    KeywordErrorClassifier,
    RecoveryResolver,
    RecoveryVerdict,
    default_strategies,
)
from conduit.workflow.types import (
    ErrorSeverity,
    ErrorType,
    RecoveryStrategy,
    RecoveryType,
    RetryConfig,
    StepExecution,
    StepStatus,
    WorkflowError,
    WorkflowExecution,
)

from conftest import make_workflow, notify_step, tool_step


def running_context(*steps):
    definition = make_workflow(*steps)
    execution = WorkflowExecution(
        workflow_id=definition.id,
        steps=[StepExecution(step_id=s.id) for s in definition.steps],
    )
    execution.metrics.total_steps = len(definition.steps)
    return ExecutionContext(execution, definition)


def fail_record(record: StepExecution, message: str = "boom") -> StepExecution:
    record.start()
    record.fail(message)
    return record


async def no_sleep(self, seconds):
    return True


class TestKeywordClassifier:
    """Tests for the keyword heuristic."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Network unreachable", ErrorType.NETWORK),
            ("failed to fetch", ErrorType.NETWORK),
            ("Request timeout after 30s", ErrorType.TIMEOUT),
            ("deadline exceeded", ErrorType.TIMEOUT),
            ("Invalid config: 'query' is required", ErrorType.VALIDATION),
            ("Internal server error", ErrorType.SYSTEM),
            ("something odd", ErrorType.EXECUTION),
        ],
    )
    def test_types(self, message, expected):
        assert KeywordErrorClassifier().classify(RuntimeError(message)).type == expected

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("fatal crash", ErrorSeverity.CRITICAL),
            ("request failed", ErrorSeverity.HIGH),
            ("deprecated field", ErrorSeverity.MEDIUM),
            ("odd", ErrorSeverity.LOW),
        ],
    )
    def test_severity(self, message, expected):
        assert KeywordErrorClassifier().classify(RuntimeError(message)).severity == expected


class TestStrategyResolution:
    """Tests for strategy lookup and the retry budget."""

    def test_default_table(self):
        table = default_strategies()
        assert table[ErrorType.NETWORK].type == RecoveryType.RETRY
        assert table[ErrorType.NETWORK].config["max_retries"] == 3
        assert table[ErrorType.TIMEOUT].config["delay_ms"] == 5000
        assert table[ErrorType.VALIDATION].type == RecoveryType.SKIP
        assert table[ErrorType.SYSTEM].type == RecoveryType.ALTERNATIVE

    def test_unmapped_type_uses_default_strategy(self):
        resolver = RecoveryResolver()
        strategy = resolver.get_strategy(ErrorType.EXECUTION)
        assert strategy.type == RecoveryType.ALTERNATIVE
        assert strategy.config["notify_user"] is False

    def test_register_strategy(self):
        resolver = RecoveryResolver()
        resolver.register_strategy(ErrorType.EXECUTION, RecoveryStrategy(RecoveryType.MANUAL))
        assert resolver.get_strategy(ErrorType.EXECUTION).type == RecoveryType.MANUAL

    def test_exhausted_retry_becomes_skip(self):
        resolver = RecoveryResolver()
        error = WorkflowError(type=ErrorType.NETWORK, retry_count=3, max_retries=3)
        strategy = resolver.resolve(error)
        assert strategy.type == RecoveryType.SKIP
        assert strategy.config["reason"] == "max_retries_exceeded"

    def test_exhausted_step_policy_overrides_nominal_strategy(self):
        resolver = RecoveryResolver()
        step = tool_step("a", retry_config=RetryConfig(max_attempts=2))
        error = WorkflowError(type=ErrorType.SYSTEM, retry_count=2, max_retries=2)
        assert resolver.resolve(error, step=step).type == RecoveryType.SKIP

    def test_resolved_strategy_is_a_copy(self):
        resolver = RecoveryResolver()
        error = WorkflowError(type=ErrorType.NETWORK)
        strategy = resolver.resolve(error)
        strategy.config["max_retries"] = 99
        assert resolver.get_strategy(ErrorType.NETWORK).config["max_retries"] == 3

    def test_max_attempts(self):
        network = default_strategies()[ErrorType.NETWORK]
        skip = default_strategies()[ErrorType.VALIDATION]
        assert RecoveryResolver.max_attempts(tool_step("a"), network) == 3
        assert RecoveryResolver.max_attempts(tool_step("a"), skip) == 0
        policy_step = tool_step("a", retry_config=RetryConfig(max_attempts=5))
        assert RecoveryResolver.max_attempts(policy_step, network) == 5


class TestHandleError:
    """Tests for error recording."""

    def test_records_and_emits(self):
        feed = EventFeed()
        resolver = RecoveryResolver(feed=feed)
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        error, strategy = resolver.handle_error(
            context, step, record, ConnectionError("network down, fatal")
        )

        assert error.type == ErrorType.NETWORK
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.max_retries == 3
        assert strategy.type == RecoveryType.RETRY
        assert context.execution.error_ids == [error.id]
        assert resolver.get_error(error.id) is error

        events = feed.history(source=ERROR_HANDLER_SOURCE)
        assert events[0].status == "error"
        assert events[0].data["severity"] == "critical"
        assert events[0].data["step_name"] == step.name
        assert events[1].status == "info"

    def test_statistics(self):
        resolver = RecoveryResolver()
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        first, _ = resolver.handle_error(context, step, record, RuntimeError("invalid input"))
        resolver.handle_error(context, step, record, RuntimeError("timeout"))
        assert resolver.resolve_error(first.id)
        assert not resolver.resolve_error("error_missing")

        stats = resolver.get_statistics()
        assert stats["total"] == 2
        assert stats["by_type"] == {"validation": 1, "timeout": 1}
        assert stats["resolved"] == 1
        assert stats["unresolved"] == 1
        assert len(resolver.get_errors_for_execution(context.execution.id)) == 2


class TestStrategyApplication:
    """Tests for applying strategies to an execution."""

    @pytest.mark.asyncio
    async def test_retry_uses_step_policy_backoff(self, monkeypatch):
        waits = []

        async def record_sleep(self, seconds):
            waits.append(seconds)
            return True

        monkeypatch.setattr(ExecutionContext, "sleep", record_sleep)

        resolver = RecoveryResolver()
        step = tool_step("a", retry_config=RetryConfig(max_attempts=3, delay_ms=100, backoff_multiplier=2))
        context = running_context(step)
        record = context.execution.steps[0]

        for _ in range(3):
            fail_record(record)
            error = WorkflowError(type=ErrorType.NETWORK, retry_count=record.retry_count)
            strategy = RecoveryStrategy(RecoveryType.RETRY, {"delay_ms": 1000, "backoff_multiplier": 2})
            verdict = await resolver.apply(strategy, context, step, record, error)
            assert verdict == RecoveryVerdict.CONTINUE
            assert record.status == StepStatus.PENDING

        assert waits == [0.1, 0.2, 0.4]
        assert record.retry_count == 3
        assert context.execution.metrics.retries == 3

    @pytest.mark.asyncio
    async def test_retry_stops_on_cancel(self):
        resolver = RecoveryResolver()
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])
        context.execution.cancel_requested = True

        verdict = await resolver.apply(
            default_strategies()[ErrorType.NETWORK], context, step, record, WorkflowError()
        )

        assert verdict == RecoveryVerdict.STOP
        assert record.retry_count == 0

    @pytest.mark.asyncio
    async def test_skip(self):
        resolver = RecoveryResolver()
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        verdict = await resolver.apply(
            default_strategies()[ErrorType.VALIDATION],
            context,
            step,
            record,
            WorkflowError(type=ErrorType.VALIDATION),
        )

        assert verdict == RecoveryVerdict.SKIP
        assert record.status == StepStatus.SKIPPED
        assert record.skip_reason == "validation_error"
        assert context.execution.metrics.skipped_steps == 1

    @pytest.mark.asyncio
    async def test_rollback_resets_preceding_steps(self):
        resolver = RecoveryResolver()
        steps = [notify_step("a"), notify_step("b"), tool_step("c")]
        context = running_context(*steps)
        execution = context.execution

        for record in execution.steps[:2]:
            record.start()
            record.complete("done")
            context.set_step_output(record.step_id, "done")
        execution.metrics.completed_steps = 2
        execution.steps[1].retry_count = 1
        failed = fail_record(execution.steps[2])
        context.cursor = 2

        verdict = await resolver.apply(
            RecoveryStrategy(RecoveryType.ROLLBACK, {"rollback_steps": 1}),
            context,
            steps[2],
            failed,
            WorkflowError(),
        )

        assert verdict == RecoveryVerdict.RESTART
        assert context.cursor == 1
        assert execution.steps[0].status == StepStatus.COMPLETED
        assert execution.steps[1].status == StepStatus.PENDING
        assert execution.steps[1].retry_count == 0
        assert execution.steps[2].status == StepStatus.PENDING
        assert execution.metrics.completed_steps == 1
        assert "b" not in execution.results
        assert "a" in execution.results

    @pytest.mark.asyncio
    async def test_rollback_limit(self):
        resolver = RecoveryResolver(max_rollbacks=1)
        step = tool_step("a")
        context = running_context(step)
        record = context.execution.steps[0]
        strategy = RecoveryStrategy(RecoveryType.ROLLBACK)

        fail_record(record)
        assert await resolver.apply(strategy, context, step, record, WorkflowError()) == RecoveryVerdict.RESTART
        fail_record(record)
        assert await resolver.apply(strategy, context, step, record, WorkflowError()) == RecoveryVerdict.ABORT

    @pytest.mark.asyncio
    async def test_alternative_records_fallbacks_and_aborts(self):
        feed = EventFeed()
        resolver = RecoveryResolver(feed=feed)
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        verdict = await resolver.apply(
            RecoveryStrategy(RecoveryType.ALTERNATIVE, {"fallback_steps": ["backup"], "notify_user": True}),
            context,
            step,
            record,
            WorkflowError(message="internal error"),
        )

        assert verdict == RecoveryVerdict.ABORT
        assert context.execution.fallback_steps == ["backup"]
        statuses = [e.status for e in feed.history(source=ERROR_HANDLER_SOURCE)]
        assert statuses == ["info", "warning"]

    @pytest.mark.asyncio
    async def test_alternative_falls_back_to_step_policy(self, monkeypatch):
        monkeypatch.setattr(ExecutionContext, "sleep", no_sleep)
        resolver = RecoveryResolver()
        step = tool_step("a", retry_config=RetryConfig(max_attempts=1, delay_ms=10))
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        verdict = await resolver.apply(
            resolver.default_strategy, context, step, record, WorkflowError()
        )

        assert verdict == RecoveryVerdict.CONTINUE
        assert record.retry_count == 1

    @pytest.mark.asyncio
    async def test_manual_pauses(self):
        resolver = RecoveryResolver()
        step = tool_step("a")
        context = running_context(step)
        record = fail_record(context.execution.steps[0])

        verdict = await resolver.apply(
            RecoveryStrategy(RecoveryType.MANUAL), context, step, record, WorkflowError()
        )

        assert verdict == RecoveryVerdict.PAUSE
        assert context.execution.status.value == "paused"

    @pytest.mark.asyncio
    async def test_failure_while_applying_aborts(self):
        feed = EventFeed()
        resolver = RecoveryResolver(feed=feed)
        step = tool_step("a")
        context = running_context(step)
        record = context.execution.steps[0]

        # Completed records cannot be skipped
        record.start()
        record.complete("done")

        verdict = await resolver.apply(
            default_strategies()[ErrorType.VALIDATION], context, step, record, WorkflowError()
        )

        assert verdict == RecoveryVerdict.ABORT
        assert feed.history(source=ERROR_HANDLER_SOURCE)[-1].status == "error"
