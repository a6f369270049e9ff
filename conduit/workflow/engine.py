"""
Conduit Workflow Engine

Main execution engine for workflows.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog

from conduit.core.config import ConduitConfig
from conduit.exceptions import (
    ExecutionFailedError,
    ExecutionNotFoundError,
    UnknownStepTypeError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from conduit.workflow.actions import (
    AgentStepHandler,
    ConditionStepHandler,
    DataTransformStepHandler,
    DelegationBackend,
    HttpStepHandler,
    NotificationStepHandler,
    ReasoningBackend,
    ReasoningStepHandler,
    RetrievalStepHandler,
    SearchBackend,
    StepDispatcher,
    ToolBackend,
    ToolStepHandler,
)
from conduit.workflow.conditions import ConditionEvaluator
from conduit.workflow.events import ENGINE_SOURCE, EventFeed
from conduit.workflow.execution import ExecutionContext
from conduit.workflow.monitoring import MetricsAggregator
from conduit.workflow.notifications import NotificationHub
from conduit.workflow.recovery import ErrorClassifier, RecoveryResolver, RecoveryVerdict
from conduit.workflow.registry import WorkflowRegistry
from conduit.workflow.types import (
    ExecutionStatus,
    StepExecution,
    StepStatus,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowNotification,
    WorkflowStep,
)

logger = structlog.get_logger(__name__)


class WorkflowEngine:
    """
    Main workflow execution engine.

    Features:
    - Dependency and condition gated step execution
    - Error classification and recovery (retry, skip, rollback,
      alternative, manual)
    - Cooperative pause, resume and cancel at step and retry boundaries
    - Lenient (declaration order) or strict (topological) traversal
    - Event feed observed by the notification hub and monitoring

    Collaborator-backed step types are only available when the matching
    backend is injected.
    """

    def __init__(
        self,
        config: Optional[ConduitConfig] = None,
        feed: Optional[EventFeed] = None,
        registry: Optional[WorkflowRegistry] = None,
        dispatcher: Optional[StepDispatcher] = None,
        resolver: Optional[RecoveryResolver] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        notifications: Optional[NotificationHub] = None,
        monitor: Optional[MetricsAggregator] = None,
        classifier: Optional[ErrorClassifier] = None,
        search_backend: Optional[SearchBackend] = None,
        delegation_backend: Optional[DelegationBackend] = None,
        tool_backend: Optional[ToolBackend] = None,
        reasoning_backend: Optional[ReasoningBackend] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ConduitConfig()
        engine_config = self.config.engine

        self.strict = engine_config.strict_ordering
        self.max_concurrent = engine_config.max_concurrent_executions

        # Components
        self.feed = feed or EventFeed()
        self.registry = registry or WorkflowRegistry(strict=self.strict)
        self.evaluator = evaluator or ConditionEvaluator()
        self.resolver = resolver or RecoveryResolver(
            feed=self.feed,
            classifier=classifier,
            max_rollbacks=engine_config.max_rollbacks,
        )

        if dispatcher is None:
            dispatcher = StepDispatcher()
            self._register_default_handlers(
                dispatcher,
                search_backend=search_backend,
                delegation_backend=delegation_backend,
                tool_backend=tool_backend,
                reasoning_backend=reasoning_backend,
                http_transport=http_transport,
            )
        self.dispatcher = dispatcher

        # Observers
        if notifications is None and self.config.notifications.enabled:
            notify_config = self.config.notifications
            notifications = NotificationHub(
                feed=self.feed,
                throttle_seconds=notify_config.throttle_seconds,
                max_notifications=notify_config.max_notifications,
                auto_dismiss_seconds=notify_config.auto_dismiss_seconds,
            )
        self.notifications = notifications
        if self.notifications is not None:
            self.notifications.register_action_handler("retry", self._retry_from_notification)
            self.notifications.register_action_handler("resume", self._resume_from_notification)

        if monitor is None and self.config.monitoring.enabled:
            monitor_config = self.config.monitoring
            monitor = MetricsAggregator(
                feed=self.feed,
                timeout_threshold_seconds=monitor_config.timeout_threshold_seconds,
                memory_alert_ratio=monitor_config.memory_alert_ratio,
                degraded_failure_ratio=monitor_config.degraded_failure_ratio,
            )
        self.monitor = monitor

        # Active executions
        self._contexts: Dict[str, ExecutionContext] = {}
        self._execution_tasks: Dict[str, asyncio.Task] = {}

        # Semaphore for concurrency control
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

        self._initialized = False

    def _register_default_handlers(
        self,
        dispatcher: StepDispatcher,
        search_backend: Optional[SearchBackend],
        delegation_backend: Optional[DelegationBackend],
        tool_backend: Optional[ToolBackend],
        reasoning_backend: Optional[ReasoningBackend],
        http_transport: Optional[httpx.AsyncBaseTransport],
    ) -> None:
        dispatcher.register_handler(ConditionStepHandler(self.evaluator))
        dispatcher.register_handler(DataTransformStepHandler(self.evaluator))
        dispatcher.register_handler(NotificationStepHandler(self.feed))
        dispatcher.register_handler(
            HttpStepHandler(
                timeout=self.config.engine.default_http_timeout,
                transport=http_transport,
            )
        )

        if search_backend is not None:
            dispatcher.register_handler(RetrievalStepHandler(search_backend))
        if delegation_backend is not None:
            dispatcher.register_handler(AgentStepHandler(delegation_backend))
        if tool_backend is not None:
            dispatcher.register_handler(ToolStepHandler(tool_backend))
        if reasoning_backend is not None:
            dispatcher.register_handler(ReasoningStepHandler(reasoning_backend))

    async def initialize(self) -> None:
        """Initialize the workflow engine."""
        if self._initialized:
            return

        await self.registry.initialize()

        self._initialized = True
        logger.info(
            "workflow_engine_initialized",
            strict=self.strict,
            step_types=[t.value for t in self.dispatcher.step_types],
        )

    async def shutdown(self) -> None:
        """Shutdown the workflow engine."""
        logger.info("workflow_engine_shutting_down")

        for context in self._contexts.values():
            if not context.execution.is_terminal():
                context.execution.cancel_requested = True
                context.interrupt()

        if self._execution_tasks:
            await asyncio.gather(*self._execution_tasks.values(), return_exceptions=True)

        await self.registry.shutdown()

        if self.notifications is not None:
            self.notifications.detach()
        if self.monitor is not None:
            self.monitor.close()

        self._initialized = False
        logger.info("workflow_engine_shutdown_complete")

    # === Workflow Management ===

    async def register(self, definition: WorkflowDefinition) -> str:
        """
        Register a workflow definition.

        The stored definition is a copy; re-registering an id replaces it.

        Step configs are checked here against their handlers; the registry
        checks the structure.

        Raises:
            WorkflowValidationError: structural or step config problems
        """
        errors: List[str] = []
        for step in definition.steps:
            if self.dispatcher.supports(step.type):
                for problem in self.dispatcher.validate_config(step.type, step.config):
                    errors.append(f"Step {step.id}: {problem}")

        if errors:
            logger.warning("workflow_rejected", workflow_id=definition.id, errors=errors)
            raise WorkflowValidationError(definition.id, errors)

        workflow_id = await self.registry.save(definition)

        logger.info(
            "workflow_registered",
            workflow_id=workflow_id,
            name=definition.name,
            steps=len(definition.steps),
        )

        return workflow_id

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Get a workflow by ID."""
        return await self.registry.get(workflow_id)

    async def list_workflows(self, tag: Optional[str] = None) -> List[WorkflowDefinition]:
        return await self.registry.list_all(tag=tag)

    async def unregister(self, workflow_id: str) -> bool:
        """Remove a workflow. Executions already started are unaffected."""
        return await self.registry.delete(workflow_id)

    # === Execution ===

    async def execute(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
        raise_on_failure: bool = False,
    ) -> WorkflowExecution:
        """
        Execute a workflow and wait for it to stop.

        The returned execution is completed, failed, cancelled or paused.
        Step failures are captured in the execution.

        Raises:
            WorkflowNotFoundError: unknown workflow id
            UnknownStepTypeError: a step type has no registered handler
            ExecutionFailedError: the run failed and raise_on_failure is set
        """
        context = await self._prepare(workflow_id, variables)
        execution = await self._drive(context)

        if raise_on_failure and execution.status == ExecutionStatus.FAILED:
            raise ExecutionFailedError(execution)

        return execution

    async def start(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """Start a workflow in the background and return its execution."""
        context = await self._prepare(workflow_id, variables)
        execution_id = context.execution.id

        task = asyncio.create_task(self._drive(context))
        self._execution_tasks[execution_id] = task
        task.add_done_callback(lambda _: self._execution_tasks.pop(execution_id, None))

        return context.execution

    async def wait(self, execution_id: str) -> WorkflowExecution:
        """Wait for a started execution to stop running."""
        execution = await self._require_execution(execution_id)

        task = self._execution_tasks.get(execution_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        return execution

    async def _prepare(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]],
    ) -> ExecutionContext:
        definition = await self.registry.get(workflow_id)
        if not definition:
            raise WorkflowNotFoundError(workflow_id)

        for step in definition.steps:
            if not self.dispatcher.supports(step.type):
                raise UnknownStepTypeError(step.type.value, step.id)

        steps = definition.topological_order() if self.strict else list(definition.steps)

        execution = WorkflowExecution(
            workflow_id=definition.id,
            workflow_name=definition.name,
            workflow_version=definition.version,
            variables=dict(variables or {}),
            steps=[StepExecution(step_id=step.id) for step in steps],
        )
        execution.metrics.total_steps = len(steps)

        context = ExecutionContext(execution, definition, steps)
        self._contexts[execution.id] = context
        await self.registry.save_execution(execution)

        logger.info(
            "execution_started",
            execution_id=execution.id,
            workflow_id=definition.id,
            steps=len(steps),
        )
        self._emit(
            execution,
            "info",
            f"Workflow started: {definition.name}",
            "execution_started",
        )

        return context

    async def _drive(self, context: ExecutionContext) -> WorkflowExecution:
        execution = context.execution

        async with self._semaphore:
            try:
                await self._run(context)
            except asyncio.CancelledError:
                if not execution.is_terminal():
                    self._mark_cancelled(context)
                raise
            finally:
                await self.registry.save_execution(execution)
                if self.monitor is not None:
                    self.monitor.sample_resources(execution)
                    self.monitor.track(execution)
                if execution.is_terminal():
                    self._contexts.pop(execution.id, None)

        return execution

    async def _run(self, context: ExecutionContext) -> None:
        """Drive the execution from the cursor until it stops."""
        execution = context.execution
        steps = context.steps

        while context.cursor < len(steps):
            if context.cancel_requested:
                self._mark_cancelled(context)
                return
            if context.pause_requested:
                self._mark_paused(context, "pause_requested")
                return

            step = steps[context.cursor]
            record = execution.steps[context.cursor]
            context.current_step_id = step.id

            if record.is_terminal():
                context.cursor += 1
                continue

            verdict = await self._run_step(context, step, record)

            if verdict is None or verdict == RecoveryVerdict.SKIP:
                context.cursor += 1
            elif verdict == RecoveryVerdict.PAUSE:
                self._mark_paused(context, "manual_intervention")
                return
            elif verdict == RecoveryVerdict.ABORT:
                self._mark_failed(context, step, record.error or "Step failed")
                return
            # CONTINUE re-runs the step, RESTART resumes from the rolled back
            # cursor, STOP is handled by the control checks above

            if self.monitor is not None:
                self.monitor.track(execution)

        self._mark_completed(context)

    async def _run_step(
        self,
        context: ExecutionContext,
        step: WorkflowStep,
        record: StepExecution,
    ) -> Optional[RecoveryVerdict]:
        """Run one attempt of a step. None means the step completed."""
        execution = context.execution

        unmet = []
        for dep in step.dependencies:
            dep_record = execution.get_step(dep)
            if dep_record is None or dep_record.status != StepStatus.COMPLETED:
                unmet.append(dep)

        if unmet:
            return self._skip(context, step, record, "dependencies_not_met", unmet=unmet)

        if step.condition is not None and not self.evaluator.evaluate(
            step.condition, execution.variables, execution.results
        ):
            return self._skip(context, step, record, "condition_not_met")

        record.start()
        logger.debug(
            "step_started",
            execution_id=execution.id,
            step_id=step.id,
            step_type=step.type.value,
            attempt=record.retry_count + 1,
        )
        self._emit(
            execution,
            "info",
            f"Executing step: {step.name}",
            "step_started",
            step_id=step.id,
        )

        try:
            config = context.resolve_config(step.config)
            output = await self.dispatcher.dispatch(
                step.type, config, execution.variables, execution.results, context=context
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            record.fail(str(e))
            logger.warning(
                "step_failed",
                execution_id=execution.id,
                step_id=step.id,
                error=str(e),
                retry_count=record.retry_count,
            )

            error, strategy = self.resolver.handle_error(context, step, record, e)
            return await self.resolver.apply(strategy, context, step, record, error)

        record.complete(output)
        context.set_step_output(step.id, output)
        execution.metrics.completed_steps += 1

        self._emit(
            execution,
            "success",
            f"Step completed: {step.name}",
            "step_completed",
            step_id=step.id,
            duration_ms=record.duration,
        )
        return None

    def _skip(
        self,
        context: ExecutionContext,
        step: WorkflowStep,
        record: StepExecution,
        reason: str,
        **data: Any,
    ) -> RecoveryVerdict:
        record.skip(reason)
        context.execution.metrics.skipped_steps += 1

        logger.debug(
            "step_skipped",
            execution_id=context.execution.id,
            step_id=step.id,
            reason=reason,
        )
        self._emit(
            context.execution,
            "info",
            f"Step skipped: {step.name}",
            "step_skipped",
            step_id=step.id,
            reason=reason,
            **data,
        )
        return RecoveryVerdict.SKIP

    # === Terminal Transitions ===

    def _mark_completed(self, context: ExecutionContext) -> None:
        execution = context.execution
        execution.complete()
        context.current_step_id = None

        logger.info(
            "execution_completed",
            execution_id=execution.id,
            completed_steps=execution.metrics.completed_steps,
            skipped_steps=execution.metrics.skipped_steps,
            duration_ms=execution.metrics.total_duration,
        )
        self._emit(
            execution,
            "success",
            f"Workflow completed: {execution.workflow_name}",
            "execution_completed",
            duration_ms=execution.metrics.total_duration,
            successful=execution.is_successful,
        )

    def _mark_failed(
        self,
        context: ExecutionContext,
        step: WorkflowStep,
        message: str,
    ) -> None:
        execution = context.execution
        execution.metrics.failed_steps += 1
        execution.fail(message, step.id)

        logger.error(
            "workflow_execution_failed",
            execution_id=execution.id,
            step_id=step.id,
            error=message,
        )
        self._emit(
            execution,
            "error",
            f"Workflow failed: {message}",
            "execution_failed",
            step_id=step.id,
            error=message,
            duration_ms=execution.metrics.total_duration,
        )

    def _mark_paused(self, context: ExecutionContext, reason: str) -> None:
        execution = context.execution
        execution.pause()

        logger.info(
            "execution_paused",
            execution_id=execution.id,
            step_id=context.current_step_id,
            reason=reason,
        )
        self._emit(
            execution,
            "warning",
            f"Workflow paused: {execution.workflow_name}",
            "execution_paused",
            step_id=context.current_step_id,
            reason=reason,
        )

    def _mark_cancelled(self, context: ExecutionContext) -> None:
        execution = context.execution
        execution.cancel()

        logger.info("execution_cancelled", execution_id=execution.id)
        self._emit(
            execution,
            "warning",
            f"Workflow cancelled: {execution.workflow_name}",
            "execution_cancelled",
            step_id=context.current_step_id,
            duration_ms=execution.metrics.total_duration,
        )

    # === Execution Control ===

    async def pause(self, execution_id: str) -> bool:
        """Request a pause; the run stops at the next step or retry boundary."""
        execution = await self._require_execution(execution_id)
        if execution.status != ExecutionStatus.RUNNING:
            return False

        execution.pause_requested = True
        self._contexts[execution_id].interrupt()

        logger.info("execution_pause_requested", execution_id=execution_id)
        return True

    async def resume(self, execution_id: str) -> WorkflowExecution:
        """
        Resume a paused execution and run it until it stops again.

        The step the run stopped on is re-run; a failed attempt is reset to
        pending without counting as a retry.
        """
        execution = await self._require_execution(execution_id)
        if execution.status != ExecutionStatus.PAUSED:
            logger.warning(
                "resume_ignored",
                execution_id=execution_id,
                status=execution.status.value,
            )
            return execution

        context = self._contexts[execution_id]
        execution.pause_requested = False
        execution.status = ExecutionStatus.RUNNING

        if context.cursor < len(execution.steps):
            record = execution.steps[context.cursor]
            if record.status in (StepStatus.FAILED, StepStatus.RUNNING):
                record.reset()

        logger.info("execution_resumed", execution_id=execution_id, cursor=context.cursor)
        self._emit(
            execution,
            "info",
            f"Workflow resumed: {execution.workflow_name}",
            "execution_resumed",
        )

        return await self._drive(context)

    async def cancel(self, execution_id: str) -> bool:
        """Cancel an execution. A paused execution is cancelled immediately."""
        execution = await self._require_execution(execution_id)
        if execution.is_terminal():
            return False

        context = self._contexts[execution_id]
        execution.cancel_requested = True
        context.interrupt()

        if execution.status == ExecutionStatus.PAUSED:
            self._mark_cancelled(context)
            await self.registry.save_execution(execution)
            if self.monitor is not None:
                self.monitor.track(execution)
            self._contexts.pop(execution_id, None)

        logger.info("execution_cancel_requested", execution_id=execution_id)
        return True

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Get an execution by ID."""
        return await self.registry.get_execution(execution_id)

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        """List executions, newest first."""
        return await self.registry.list_executions(
            workflow_id=workflow_id,
            status=status,
            limit=limit,
        )

    async def cleanup_executions(self, older_than_hours: float = 24.0) -> int:
        """Forget terminal executions that finished before the cutoff."""
        stale = await self.registry.prune_executions(older_than_hours)
        for execution_id in stale:
            self._contexts.pop(execution_id, None)
            if self.monitor is not None:
                self.monitor.forget(execution_id)
        return len(stale)

    async def _require_execution(self, execution_id: str) -> WorkflowExecution:
        execution = await self.registry.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    # === Notification Actions ===

    async def _retry_from_notification(self, notification: WorkflowNotification) -> WorkflowExecution:
        previous = None
        if notification.execution_id:
            previous = await self.registry.get_execution(notification.execution_id)
        variables = dict(previous.variables) if previous else {}
        return await self.start(notification.workflow_id, variables)

    async def _resume_from_notification(self, notification: WorkflowNotification) -> WorkflowExecution:
        return await self.resume(notification.execution_id)

    # === Events ===

    def _emit(
        self,
        execution: WorkflowExecution,
        status: str,
        message: str,
        event: str,
        **data: Any,
    ) -> None:
        payload = {
            "event": event,
            "workflow_id": execution.workflow_id,
            "execution_id": execution.id,
        }
        payload.update(data)
        self.feed.emit(ENGINE_SOURCE, status, message, payload)

    # === Statistics ===

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        status_counts = self.registry.execution_counts()

        stats: Dict[str, Any] = {
            "active_executions": status_counts[ExecutionStatus.RUNNING.value],
            "background_tasks": len(self._execution_tasks),
            "total_executions": sum(status_counts.values()),
            "by_status": status_counts,
            "max_concurrent": self.max_concurrent,
            "strict_ordering": self.strict,
            "step_types": [t.value for t in self.dispatcher.step_types],
            "errors": self.resolver.get_statistics(),
        }
        if self.notifications is not None:
            stats["notifications"] = self.notifications.get_statistics()
        if self.monitor is not None:
            stats["health"] = self.monitor.health()
        return stats
