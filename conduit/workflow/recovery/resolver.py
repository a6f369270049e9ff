"""
Conduit Recovery Resolver

Turns a step failure into a recorded WorkflowError, picks exactly one
RecoveryStrategy for it and applies that strategy to the execution.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import structlog

from conduit.workflow.events import ERROR_HANDLER_SOURCE, EventFeed
from conduit.workflow.recovery.classifier import ErrorClassifier, KeywordErrorClassifier
from conduit.workflow.types import (
    ErrorType,
    RecoveryStrategy,
    RecoveryType,
    StepExecution,
    StepStatus,
    WorkflowError,
    WorkflowStep,
)

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class RecoveryVerdict(str, Enum):
    """What the run loop should do after recovery was applied."""
    CONTINUE = "continue"  # re-run the same step
    SKIP = "skip"          # step skipped, move on
    RESTART = "restart"    # rollback moved the cursor back
    PAUSE = "pause"        # manual intervention, stop until resumed
    STOP = "stop"          # a pause/cancel request was observed
    ABORT = "abort"        # the execution fails


def default_strategies() -> Dict[ErrorType, RecoveryStrategy]:
    """The built-in error type -> strategy table."""
    return {
        ErrorType.NETWORK: RecoveryStrategy(
            RecoveryType.RETRY,
            {"max_retries": 3, "delay_ms": 1000, "backoff_multiplier": 2},
        ),
        ErrorType.TIMEOUT: RecoveryStrategy(
            RecoveryType.RETRY,
            {"max_retries": 2, "delay_ms": 5000, "backoff_multiplier": 1, "timeout_ms": 30000},
        ),
        ErrorType.VALIDATION: RecoveryStrategy(
            RecoveryType.SKIP,
            {"skip_step": True, "log_warning": True},
        ),
        ErrorType.SYSTEM: RecoveryStrategy(
            RecoveryType.ALTERNATIVE,
            {"fallback_steps": [], "notify_user": True},
        ),
    }


class RecoveryResolver:
    """
    Error classifier front-end and recovery strategy engine.

    Features:
    - Pluggable classifier
    - Overridable error type -> strategy table
    - Retry budget cap (exhausted retries always downgrade to skip)
    - Error store with statistics
    """

    def __init__(
        self,
        feed: Optional[EventFeed] = None,
        classifier: Optional[ErrorClassifier] = None,
        default_strategy: Optional[RecoveryStrategy] = None,
        max_rollbacks: int = 3,
    ):
        self.feed = feed or EventFeed()
        self.classifier = classifier or KeywordErrorClassifier()
        self.default_strategy = default_strategy or RecoveryStrategy(
            RecoveryType.ALTERNATIVE,
            {"fallback_steps": [], "notify_user": False},
        )
        self.max_rollbacks = max_rollbacks

        self._strategies: Dict[ErrorType, RecoveryStrategy] = default_strategies()
        self._errors: Dict[str, WorkflowError] = {}

    # === Strategy Table ===

    def register_strategy(self, error_type: ErrorType, strategy: RecoveryStrategy) -> None:
        """Override the strategy used for an error type."""
        self._strategies[ErrorType(error_type)] = strategy
        logger.info(
            "recovery_strategy_registered",
            error_type=ErrorType(error_type).value,
            strategy=strategy.type.value,
        )

    def get_strategy(self, error_type: ErrorType) -> RecoveryStrategy:
        return self._strategies.get(ErrorType(error_type), self.default_strategy)

    @property
    def strategies(self) -> Dict[ErrorType, RecoveryStrategy]:
        return dict(self._strategies)

    # === Error Handling ===

    def handle_error(
        self,
        context: "ExecutionContext",
        step: WorkflowStep,
        record: StepExecution,
        error: BaseException,
    ) -> tuple[WorkflowError, RecoveryStrategy]:
        """
        Record a step failure and resolve its recovery strategy.

        Returns:
            The recorded error and the single strategy chosen for it
        """
        execution = context.execution
        classification = self.classifier.classify(error)
        nominal = self.get_strategy(classification.type)

        workflow_error = WorkflowError(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            step_id=step.id,
            type=classification.type,
            severity=classification.severity,
            message=str(error),
            details={
                "error_class": type(error).__name__,
                "step_name": step.name,
                "step_type": step.type.value,
            },
            retry_count=record.retry_count,
            max_retries=self.max_attempts(step, nominal),
        )

        self._errors[workflow_error.id] = workflow_error
        execution.error_ids.append(workflow_error.id)

        self.feed.emit(
            ERROR_HANDLER_SOURCE,
            "error",
            f"Workflow error: {workflow_error.message}",
            {
                "error_id": workflow_error.id,
                "type": workflow_error.type.value,
                "severity": workflow_error.severity.value,
                "step_id": step.id,
                "step_name": step.name,
                "execution_id": execution.id,
                "workflow_id": execution.workflow_id,
            },
        )

        strategy = self.resolve(workflow_error, nominal, step)

        logger.warning(
            "step_error_classified",
            execution_id=execution.id,
            step_id=step.id,
            error_type=workflow_error.type.value,
            severity=workflow_error.severity.value,
            strategy=strategy.type.value,
        )

        self.feed.emit(
            ERROR_HANDLER_SOURCE,
            "info",
            f"Applying recovery strategy: {strategy.type.value}",
            {
                "error_id": workflow_error.id,
                "strategy": strategy.type.value,
                "execution_id": execution.id,
                "workflow_id": execution.workflow_id,
            },
        )

        return workflow_error, strategy

    def resolve(
        self,
        error: WorkflowError,
        nominal: Optional[RecoveryStrategy] = None,
        step: Optional[WorkflowStep] = None,
    ) -> RecoveryStrategy:
        """
        Pick the strategy for an error.

        An exhausted retry budget becomes skip: for retry strategies always,
        and for any strategy when the step carries its own retry policy.
        """
        strategy = nominal or self.get_strategy(error.type)

        exhausted = error.retry_count >= error.max_retries
        has_policy = step is not None and step.retry_config is not None
        if exhausted and (strategy.type == RecoveryType.RETRY or has_policy):
            return RecoveryStrategy(
                RecoveryType.SKIP,
                {"reason": "max_retries_exceeded", "log_warning": True},
            )

        return copy.deepcopy(strategy)

    @staticmethod
    def max_attempts(step: WorkflowStep, strategy: RecoveryStrategy) -> int:
        """Effective retry budget: the step policy wins over the strategy."""
        if step.retry_config is not None:
            return step.retry_config.max_attempts
        if strategy.type == RecoveryType.RETRY:
            return int(strategy.config.get("max_retries", 3))
        return 0

    # === Strategy Application ===

    async def apply(
        self,
        strategy: RecoveryStrategy,
        context: "ExecutionContext",
        step: WorkflowStep,
        record: StepExecution,
        error: WorkflowError,
    ) -> RecoveryVerdict:
        """Apply a strategy to the execution and tell the loop what to do."""
        try:
            if strategy.type == RecoveryType.RETRY:
                return await self._apply_retry(strategy, context, step, record, error)
            if strategy.type == RecoveryType.SKIP:
                return self._apply_skip(strategy, context, record, error)
            if strategy.type == RecoveryType.ROLLBACK:
                return self._apply_rollback(strategy, context, record, error)
            if strategy.type == RecoveryType.ALTERNATIVE:
                return await self._apply_alternative(strategy, context, step, record, error)
            if strategy.type == RecoveryType.MANUAL:
                return self._apply_manual(context, error)
            return RecoveryVerdict.ABORT

        except Exception as recovery_error:
            logger.error(
                "recovery_failed",
                error_id=error.id,
                strategy=strategy.type.value,
                error=str(recovery_error),
            )
            self._emit(
                context,
                "error",
                f"Recovery strategy failed: {recovery_error}",
                {"error_id": error.id, "strategy": strategy.type.value},
            )
            return RecoveryVerdict.ABORT

    async def _apply_retry(
        self,
        strategy: RecoveryStrategy,
        context: "ExecutionContext",
        step: WorkflowStep,
        record: StepExecution,
        error: WorkflowError,
    ) -> RecoveryVerdict:
        if step.retry_config is not None:
            delay_ms = step.retry_config.delay_for(record.retry_count)
        else:
            base = float(strategy.config.get("delay_ms", 1000))
            multiplier = float(strategy.config.get("backoff_multiplier", 1))
            delay_ms = base * (multiplier ** record.retry_count)

        if context.should_stop():
            return RecoveryVerdict.STOP

        logger.info(
            "retrying_step",
            execution_id=context.execution.id,
            step_id=record.step_id,
            delay_ms=delay_ms,
            attempt=record.retry_count + 1,
        )

        if not await context.sleep(delay_ms / 1000):
            return RecoveryVerdict.STOP

        record.retry_count += 1
        record.reset()
        context.execution.metrics.retries += 1

        self._emit(
            context,
            "info",
            f"Retrying step after {delay_ms:g}ms delay (attempt {record.retry_count})",
            {"error_id": error.id, "retry_count": record.retry_count, "delay_ms": delay_ms},
        )

        return RecoveryVerdict.CONTINUE

    def _apply_skip(
        self,
        strategy: RecoveryStrategy,
        context: "ExecutionContext",
        record: StepExecution,
        error: WorkflowError,
    ) -> RecoveryVerdict:
        reason = strategy.config.get("reason", f"{error.type.value}_error")
        record.skip(reason)
        context.execution.metrics.skipped_steps += 1

        if strategy.config.get("log_warning"):
            self._emit(
                context,
                "warning",
                f"Step skipped due to error: {error.message}",
                {"error_id": error.id, "step_id": record.step_id, "reason": reason},
            )

        return RecoveryVerdict.SKIP

    def _apply_rollback(
        self,
        strategy: RecoveryStrategy,
        context: "ExecutionContext",
        record: StepExecution,
        error: WorkflowError,
    ) -> RecoveryVerdict:
        execution = context.execution
        if context.rollbacks >= self.max_rollbacks:
            logger.warning(
                "rollback_limit_reached",
                execution_id=execution.id,
                rollbacks=context.rollbacks,
            )
            return RecoveryVerdict.ABORT

        rollback_steps = max(0, int(strategy.config.get("rollback_steps", 1)))
        current = execution.index_of(record.step_id)
        start = max(0, current - rollback_steps)

        self._emit(
            context,
            "warning",
            f"Rolling back {current - start} steps due to error",
            {"error_id": error.id, "rollback_steps": current - start},
        )

        metrics = execution.metrics
        for target in execution.steps[start:current + 1]:
            if target.status == StepStatus.COMPLETED:
                metrics.completed_steps -= 1
            elif target.status == StepStatus.SKIPPED:
                metrics.skipped_steps -= 1
            target.reset(clear_retries=True)
            context.drop_step_output(target.step_id)

        context.cursor = start
        context.rollbacks += 1
        return RecoveryVerdict.RESTART

    async def _apply_alternative(
        self,
        strategy: RecoveryStrategy,
        context: "ExecutionContext",
        step: WorkflowStep,
        record: StepExecution,
        error: WorkflowError,
    ) -> RecoveryVerdict:
        fallback_steps = list(strategy.config.get("fallback_steps") or [])

        if fallback_steps:
            context.execution.fallback_steps.extend(fallback_steps)
            self._emit(
                context,
                "info",
                f"Using alternative execution path with {len(fallback_steps)} fallback steps",
                {"error_id": error.id, "fallback_steps": fallback_steps},
            )

        if strategy.config.get("notify_user"):
            self._emit(
                context,
                "warning",
                f"User intervention may be required for error: {error.message}",
                {"error_id": error.id, "severity": error.severity.value},
            )

        # Fall back to the step's own retry policy
        policy = step.retry_config
        if policy is not None and record.retry_count < policy.max_attempts:
            retry = RecoveryStrategy(RecoveryType.RETRY, policy.to_dict())
            return await self._apply_retry(retry, context, step, record, error)

        return RecoveryVerdict.ABORT

    def _apply_manual(
        self,
        context: "ExecutionContext",
        error: WorkflowError,
    ) -> RecoveryVerdict:
        context.execution.pause()
        self._emit(
            context,
            "warning",
            f"Workflow paused for manual intervention: {error.message}",
            {"error_id": error.id, "requires_manual_action": True},
        )
        return RecoveryVerdict.PAUSE

    def _emit(
        self,
        context: "ExecutionContext",
        status: str,
        message: str,
        data: Dict[str, Any],
    ) -> None:
        payload = {
            "execution_id": context.execution.id,
            "workflow_id": context.execution.workflow_id,
        }
        payload.update(data)
        self.feed.emit(ERROR_HANDLER_SOURCE, status, message, payload)

    # === Error Store ===

    def get_error(self, error_id: str) -> Optional[WorkflowError]:
        return self._errors.get(error_id)

    def list_errors(self) -> List[WorkflowError]:
        return list(self._errors.values())

    def get_errors_for_execution(self, execution_id: str) -> List[WorkflowError]:
        return [e for e in self._errors.values() if e.execution_id == execution_id]

    def resolve_error(self, error_id: str) -> bool:
        """Mark an error as resolved."""
        error = self._errors.get(error_id)
        if not error:
            return False

        error.resolved = True
        self.feed.emit(
            ERROR_HANDLER_SOURCE,
            "success",
            f"Error resolved: {error.message}",
            {
                "error_id": error_id,
                "execution_id": error.execution_id,
                "workflow_id": error.workflow_id,
            },
        )
        return True

    def get_statistics(self) -> Dict[str, Any]:
        """Error counts by type and severity."""
        errors = list(self._errors.values())
        by_type: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for error in errors:
            by_type[error.type.value] = by_type.get(error.type.value, 0) + 1
            by_severity[error.severity.value] = by_severity.get(error.severity.value, 0) + 1

        resolved = len([e for e in errors if e.resolved])
        return {
            "total": len(errors),
            "by_type": by_type,
            "by_severity": by_severity,
            "resolved": resolved,
            "unresolved": len(errors) - resolved,
        }
