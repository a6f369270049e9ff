"""
Conduit Execution Monitoring

Aggregates per-execution metrics, raises alerts and reports a coarse
health signal for the engine.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import psutil
import structlog

from conduit.workflow.events import ENGINE_SOURCE, MONITORING_SOURCE, EventFeed
from conduit.workflow.types import (
    AlertType,
    ExecutionStatus,
    ResourceUsage,
    WorkflowAlert,
    WorkflowEvent,
    WorkflowExecution,
)

logger = structlog.get_logger(__name__)

ResourceSampler = Callable[[], ResourceUsage]

_TERMINAL_EVENTS = {
    "execution_completed": ExecutionStatus.COMPLETED,
    "execution_failed": ExecutionStatus.FAILED,
    "execution_cancelled": ExecutionStatus.CANCELLED,
}


def sample_host_resources() -> ResourceUsage:
    """Host CPU and memory utilisation as ratios."""
    return ResourceUsage(
        cpu=psutil.cpu_percent(interval=None) / 100,
        memory=psutil.virtual_memory().percent / 100,
        network=0.0,
    )


class MetricsAggregator:
    """
    Tracks executions and raises alerts.

    Alerts:
    - timeout: a running execution exceeded the timeout threshold
    - error: an execution ended failed
    - resource: sampled memory usage exceeded the alert ratio

    Each alert type is raised at most once per execution and is published
    on the feed as a ``workflow-monitoring`` warning event.
    """

    def __init__(
        self,
        feed: Optional[EventFeed] = None,
        timeout_threshold_seconds: float = 300.0,
        memory_alert_ratio: float = 0.8,
        degraded_failure_ratio: float = 0.5,
        sampler: Optional[ResourceSampler] = None,
    ):
        self.feed = feed
        self.timeout_threshold_seconds = timeout_threshold_seconds
        self.memory_alert_ratio = memory_alert_ratio
        self.degraded_failure_ratio = degraded_failure_ratio
        self.sampler = sampler or sample_host_resources

        self._states: Dict[str, ExecutionStatus] = {}
        self._durations: Dict[str, float] = {}
        self._snapshots: Dict[str, Dict[str, Any]] = {}
        self._alerts: Dict[str, WorkflowAlert] = {}
        self._raised: Set[Tuple[str, AlertType]] = set()
        self._last_sample: Optional[ResourceUsage] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        if feed is not None:
            self._unsubscribe = feed.subscribe(self.handle_event)

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # === Event Intake ===

    def handle_event(self, event: WorkflowEvent) -> None:
        """Follow execution lifecycle events from the engine."""
        if event.source != ENGINE_SOURCE:
            return

        execution_id = event.data.get("execution_id")
        kind = event.data.get("event")
        if not execution_id or not kind:
            return

        if kind in ("execution_started", "execution_resumed"):
            self._states[execution_id] = ExecutionStatus.RUNNING
        elif kind == "execution_paused":
            self._states[execution_id] = ExecutionStatus.PAUSED
        elif kind in _TERMINAL_EVENTS:
            self._states[execution_id] = _TERMINAL_EVENTS[kind]
            if event.data.get("duration_ms") is not None:
                self._durations[execution_id] = event.data["duration_ms"]

    # === Tracking ===

    def track(self, execution: WorkflowExecution) -> List[WorkflowAlert]:
        """Snapshot an execution's metrics and raise any new alerts."""
        self._states[execution.id] = execution.status
        if execution.is_terminal():
            self._durations[execution.id] = execution.metrics.total_duration

        self._snapshots[execution.id] = execution.metrics.to_dict()
        return self.check_alerts(execution)

    def sample_resources(self, execution: WorkflowExecution) -> ResourceUsage:
        """Fill the execution's resource usage from the host."""
        try:
            usage = self.sampler()
        except Exception as e:
            logger.warning("resource_sample_failed", error=str(e))
            return execution.metrics.resource_usage

        execution.metrics.resource_usage = usage
        self._last_sample = usage
        return usage

    def check_alerts(self, execution: WorkflowExecution) -> List[WorkflowAlert]:
        raised: List[WorkflowAlert] = []

        if (
            execution.status == ExecutionStatus.RUNNING
            and execution.elapsed_ms > self.timeout_threshold_seconds * 1000
        ):
            alert = self._raise(
                execution,
                AlertType.TIMEOUT,
                f"Execution {execution.id} exceeded timeout threshold",
            )
            if alert:
                raised.append(alert)

        if execution.status == ExecutionStatus.FAILED:
            alert = self._raise(
                execution,
                AlertType.ERROR,
                f"Workflow execution failed: {execution.error}",
            )
            if alert:
                raised.append(alert)

        if execution.metrics.resource_usage.memory > self.memory_alert_ratio:
            alert = self._raise(
                execution,
                AlertType.RESOURCE,
                f"High memory usage: {execution.metrics.resource_usage.memory:.0%}",
            )
            if alert:
                raised.append(alert)

        return raised

    def _raise(
        self,
        execution: WorkflowExecution,
        alert_type: AlertType,
        message: str,
    ) -> Optional[WorkflowAlert]:
        key = (execution.id, alert_type)
        if key in self._raised:
            return None
        self._raised.add(key)

        alert = WorkflowAlert(
            workflow_id=execution.workflow_id,
            execution_id=execution.id,
            type=alert_type,
            message=message,
        )
        self._alerts[alert.id] = alert

        logger.warning(
            "monitoring_alert",
            alert_id=alert.id,
            type=alert_type.value,
            execution_id=execution.id,
        )

        if self.feed is not None:
            self.feed.emit(
                MONITORING_SOURCE,
                "warning",
                message,
                {
                    "type": alert_type.value,
                    "alert_id": alert.id,
                    "workflow_id": execution.workflow_id,
                    "execution_id": execution.id,
                },
            )

        return alert

    # === Alerts ===

    def get_alerts(
        self,
        execution_id: Optional[str] = None,
        include_resolved: bool = False,
    ) -> List[WorkflowAlert]:
        alerts = list(self._alerts.values())
        if execution_id:
            alerts = [a for a in alerts if a.execution_id == execution_id]
        if not include_resolved:
            alerts = [a for a in alerts if not a.resolved]
        return alerts

    def resolve_alert(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if not alert:
            return False
        alert.resolved = True
        logger.info("monitoring_alert_resolved", alert_id=alert_id)
        return True

    def forget(self, execution_id: str) -> None:
        """Drop everything tracked for an execution, its alerts included."""
        self._states.pop(execution_id, None)
        self._durations.pop(execution_id, None)
        self._snapshots.pop(execution_id, None)
        for alert_id in [a.id for a in self._alerts.values() if a.execution_id == execution_id]:
            del self._alerts[alert_id]
        self._raised = {key for key in self._raised if key[0] != execution_id}

    # === Reporting ===

    def get_execution_metrics(self, execution_id: str) -> Optional[Dict[str, Any]]:
        return self._snapshots.get(execution_id)

    def get_system_metrics(self) -> Dict[str, Any]:
        states = list(self._states.values())
        durations = list(self._durations.values())

        return {
            "total_executions": len(states),
            "active_executions": sum(
                1 for s in states if s in (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED)
            ),
            "completed_executions": states.count(ExecutionStatus.COMPLETED),
            "failed_executions": states.count(ExecutionStatus.FAILED),
            "cancelled_executions": states.count(ExecutionStatus.CANCELLED),
            "average_duration_ms": sum(durations) / len(durations) if durations else 0.0,
            "unresolved_alerts": len(self.get_alerts()),
            "resource_usage": self._last_sample.to_dict() if self._last_sample else None,
        }

    def health(self) -> str:
        """'healthy' or 'degraded'."""
        if self.get_alerts():
            return "degraded"

        states = list(self._states.values())
        finished = sum(
            1 for s in states if s in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)
        )
        if finished:
            failure_ratio = states.count(ExecutionStatus.FAILED) / finished
            if failure_ratio > self.degraded_failure_ratio:
                return "degraded"

        return "healthy"
