"""
Conduit Workflow Types

Core dataclasses for workflow definitions, executions, errors and
notifications.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# === Enums ===


class StepType(str, Enum):
    """Types of workflow steps."""
    RETRIEVAL_QUERY = "retrieval-query"  # Search backend
    AGENT_DELEGATE = "agent-delegate"    # Delegation backend
    TOOL_INVOKE = "tool-invoke"          # Tool backend
    REASONING_CALL = "reasoning-call"    # Reasoning/LLM backend
    HTTP_REQUEST = "http-request"        # Generic outbound call
    DATA_TRANSFORM = "data-transform"    # map/filter/reduce over a prior output
    CONDITION = "condition"              # Boolean predicate
    NOTIFICATION = "notification"        # Side-effecting message


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    """Status of a single step within an execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ConditionOperator(str, Enum):
    """Condition operators for step gating."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EXISTS = "exists"


class ErrorType(str, Enum):
    """Classification of a step failure."""
    NETWORK = "network"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    SYSTEM = "system"
    EXECUTION = "execution"


class ErrorSeverity(str, Enum):
    """Severity of a step failure."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryType(str, Enum):
    """Recovery strategies for a classified failure."""
    RETRY = "retry"
    SKIP = "skip"
    ROLLBACK = "rollback"
    ALTERNATIVE = "alternative"
    MANUAL = "manual"


class NotificationType(str, Enum):
    """Display type of a notification."""
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class AlertType(str, Enum):
    """Types of monitoring alerts."""
    ERROR = "error"
    WARNING = "warning"
    TIMEOUT = "timeout"
    RESOURCE = "resource"


# === Definitions ===


@dataclass
class RetryConfig:
    """Per-step retry policy."""
    max_attempts: int = 3
    delay_ms: float = 1000.0
    backoff_multiplier: float = 2.0

    def delay_for(self, retry_count: int) -> float:
        """Delay in milliseconds before the retry following `retry_count` retries."""
        return self.delay_ms * (self.backoff_multiplier ** retry_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
            "backoff_multiplier": self.backoff_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        return cls(
            max_attempts=data.get("max_attempts", data.get("maxAttempts", 3)),
            delay_ms=data.get("delay_ms", data.get("delayMs", 1000.0)),
            backoff_multiplier=data.get(
                "backoff_multiplier", data.get("backoffMultiplier", 2.0)
            ),
        )


@dataclass
class StepCondition:
    """
    A gating predicate.

    The operator is kept as a plain string so that definitions carrying an
    operator this engine does not know still load; such conditions evaluate
    to False.
    """
    field: str = ""
    operator: str = ConditionOperator.EQUALS.value
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepCondition":
        operator = data.get("operator", ConditionOperator.EQUALS.value)
        if isinstance(operator, ConditionOperator):
            operator = operator.value
        return cls(
            field=data.get("field", ""),
            operator=operator,
            value=data.get("value"),
        )


@dataclass
class WorkflowStep:
    """A step in a workflow."""
    id: str = field(default_factory=lambda: _new_id("step"))
    name: str = ""
    type: StepType = StepType.NOTIFICATION
    description: str = ""

    # Payload handed to the step handler; values may be ${placeholders}
    config: Dict[str, Any] = field(default_factory=dict)

    # Gating
    dependencies: List[str] = field(default_factory=list)
    condition: Optional[StepCondition] = None

    # Error handling
    retry_config: Optional[RetryConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "config": self.config,
            "dependencies": list(self.dependencies),
        }
        if self.condition:
            result["condition"] = self.condition.to_dict()
        if self.retry_config:
            result["retry_config"] = self.retry_config.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        """Create from dictionary."""
        step = cls(
            id=data.get("id", _new_id("step")),
            name=data.get("name", ""),
            type=StepType(data.get("type", StepType.NOTIFICATION.value)),
            description=data.get("description", ""),
            config=dict(data.get("config", {})),
            dependencies=list(data.get("dependencies", [])),
        )
        if data.get("condition"):
            step.condition = StepCondition.from_dict(data["condition"])
        retry = data.get("retry_config") or data.get("retryConfig")
        if retry:
            step.retry_config = RetryConfig.from_dict(retry)
        return step


@dataclass
class WorkflowDefinition:
    """A workflow definition: an ordered list of steps."""
    id: str = field(default_factory=lambda: _new_id("wf"))
    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    steps: List[WorkflowStep] = field(default_factory=list)

    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def validate(self, strict: bool = False) -> List[str]:
        """Validate workflow definition. Returns list of errors."""
        errors = []

        if not self.name or not self.name.strip():
            errors.append("Workflow name is required")

        if not self.steps:
            errors.append("Workflow must have at least one step")

        seen: Set[str] = set()
        duplicates: List[str] = []
        for step in self.steps:
            if step.id in seen and step.id not in duplicates:
                duplicates.append(step.id)
            seen.add(step.id)
        if duplicates:
            errors.append(f"Duplicate step IDs found: {', '.join(duplicates)}")

        for step in self.steps:
            if not step.name:
                errors.append(f"Step {step.id} has no name")
            for dep in step.dependencies:
                if dep == step.id:
                    errors.append(f"Step {step.id} depends on itself")
                elif dep not in seen:
                    errors.append(f"Step {step.id} depends on unknown step: {dep}")

        if strict and not errors:
            cycle = self.find_cycle()
            if cycle:
                errors.append(f"Dependency cycle detected: {' -> '.join(cycle)}")

        return errors

    def find_cycle(self) -> Optional[List[str]]:
        """Return the step ids forming a dependency cycle, if any."""
        graph = {step.id: list(step.dependencies) for step in self.steps}
        visiting: Set[str] = set()
        done: Set[str] = set()
        path: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            visiting.add(node)
            path.append(node)
            for dep in graph.get(node, []):
                if dep in visiting:
                    return path[path.index(dep):] + [dep]
                if dep not in done and dep in graph:
                    found = visit(dep)
                    if found:
                        return found
            visiting.discard(node)
            done.add(node)
            path.pop()
            return None

        for step in self.steps:
            if step.id not in done:
                found = visit(step.id)
                if found:
                    return found
        return None

    def topological_order(self) -> List[WorkflowStep]:
        """
        Steps in dependency order, ties broken by declaration order.

        Raises ValueError if the dependencies contain a cycle.
        """
        index = {step.id: i for i, step in enumerate(self.steps)}
        remaining = {
            step.id: {d for d in step.dependencies if d in index}
            for step in self.steps
        }
        ordered: List[WorkflowStep] = []

        while remaining:
            ready = sorted(
                (sid for sid, deps in remaining.items() if not deps),
                key=index.__getitem__,
            )
            if not ready:
                raise ValueError(f"Dependency cycle among steps: {sorted(remaining)}")
            chosen = ready[0]
            ordered.append(self.steps[index[chosen]])
            del remaining[chosen]
            for deps in remaining.values():
                deps.discard(chosen)

        return ordered

    def copy(self) -> "WorkflowDefinition":
        """Deep copy, used by the registry to freeze registered definitions."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "steps": [s.to_dict() for s in self.steps],
            "tags": self.tags,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowDefinition":
        """Create from dictionary."""
        definition = cls(
            id=data.get("id", _new_id("wf")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            version=str(data.get("version", "1.0.0")),
            tags=list(data.get("tags", [])),
            metadata=dict(data.get("metadata", {})),
        )

        for step_data in data.get("steps", []):
            definition.steps.append(WorkflowStep.from_dict(step_data))

        if isinstance(data.get("created_at"), str):
            definition.created_at = datetime.fromisoformat(data["created_at"])

        return definition


# === Execution Types ===


@dataclass
class ResourceUsage:
    """Sampled resource usage ratios (0..1)."""
    cpu: float = 0.0
    memory: float = 0.0
    network: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"cpu": self.cpu, "memory": self.memory, "network": self.network}


@dataclass
class ExecutionMetrics:
    """Per-execution counters."""
    total_steps: int = 0
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    retries: int = 0
    total_duration: float = 0.0  # milliseconds
    resource_usage: ResourceUsage = field(default_factory=ResourceUsage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "completed_steps": self.completed_steps,
            "failed_steps": self.failed_steps,
            "skipped_steps": self.skipped_steps,
            "retries": self.retries,
            "total_duration": self.total_duration,
            "resource_usage": self.resource_usage.to_dict(),
        }


@dataclass
class StepExecution:
    """
    Run-time record of one step.

    Status only moves forward (pending -> running -> completed/failed,
    pending/failed -> skipped). `reset()` is the single way back to pending
    and is reserved for retry, rollback and resume.
    """
    step_id: str = ""
    status: StepStatus = StepStatus.PENDING
    retry_count: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[float] = None  # milliseconds

    output: Any = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None

    def start(self) -> None:
        if self.status != StepStatus.PENDING:
            raise ValueError(f"Step {self.step_id} cannot start from {self.status.value}")
        self.status = StepStatus.RUNNING
        self.started_at = datetime.now()
        self.completed_at = None
        self.duration = None
        self.error = None

    def complete(self, output: Any = None) -> None:
        if self.status != StepStatus.RUNNING:
            raise ValueError(f"Step {self.step_id} cannot complete from {self.status.value}")
        self.status = StepStatus.COMPLETED
        self.output = output
        self._finish()

    def fail(self, error: str) -> None:
        if self.status != StepStatus.RUNNING:
            raise ValueError(f"Step {self.step_id} cannot fail from {self.status.value}")
        self.status = StepStatus.FAILED
        self.error = error
        self._finish()

    def skip(self, reason: str) -> None:
        if self.status not in (StepStatus.PENDING, StepStatus.FAILED):
            raise ValueError(f"Step {self.step_id} cannot be skipped from {self.status.value}")
        self.status = StepStatus.SKIPPED
        self.skip_reason = reason
        if self.completed_at is None:
            self.completed_at = datetime.now()

    def reset(self, clear_retries: bool = False) -> None:
        self.status = StepStatus.PENDING
        self.output = None
        self.skip_reason = None
        self.completed_at = None
        self.duration = None
        if clear_retries:
            self.retry_count = 0

    def is_terminal(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)

    def _finish(self) -> None:
        self.completed_at = datetime.now()
        if self.started_at:
            self.duration = (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "output": self.output,
            "error": self.error,
            "skip_reason": self.skip_reason,
        }


@dataclass
class WorkflowExecution:
    """One run of a workflow against a variable set."""
    id: str = field(default_factory=lambda: _new_id("exec"))
    workflow_id: str = ""
    workflow_name: str = ""
    workflow_version: str = ""

    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    variables: Dict[str, Any] = field(default_factory=dict)
    steps: List[StepExecution] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)

    error: Optional[str] = None
    error_step_id: Optional[str] = None
    error_ids: List[str] = field(default_factory=list)
    fallback_steps: List[str] = field(default_factory=list)

    # Advisory control flags, polled by the engine at step boundaries
    cancel_requested: bool = False
    pause_requested: bool = False

    def get_step(self, step_id: str) -> Optional[StepExecution]:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def index_of(self, step_id: str) -> int:
        for i, step in enumerate(self.steps):
            if step.step_id == step_id:
                return i
        return -1

    def complete(self) -> None:
        """Mark execution as completed."""
        self.status = ExecutionStatus.COMPLETED
        self._finish()

    def fail(self, error: str, step_id: Optional[str] = None) -> None:
        """Mark execution as failed."""
        self.status = ExecutionStatus.FAILED
        self.error = error
        self.error_step_id = step_id
        self._finish()

    def cancel(self) -> None:
        """Mark execution as cancelled."""
        self.status = ExecutionStatus.CANCELLED
        self._finish()

    def pause(self) -> None:
        self.status = ExecutionStatus.PAUSED

    def _finish(self) -> None:
        self.completed_at = datetime.now()
        self.metrics.total_duration = (
            self.completed_at - self.started_at
        ).total_seconds() * 1000

    def is_terminal(self) -> bool:
        """Check if execution is in a terminal state."""
        return self.status in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )

    @property
    def is_successful(self) -> bool:
        """Completed with at least one step actually completed."""
        return (
            self.status == ExecutionStatus.COMPLETED
            and self.metrics.completed_steps > 0
        )

    @property
    def elapsed_ms(self) -> float:
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "workflow_version": self.workflow_version,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "variables": self.variables,
            "steps": [s.to_dict() for s in self.steps],
            "metrics": self.metrics.to_dict(),
            "error": self.error,
            "error_step_id": self.error_step_id,
            "fallback_steps": self.fallback_steps,
        }


# === Errors & Recovery ===


@dataclass
class WorkflowError:
    """A classified step failure. Only `resolved` changes after creation."""
    id: str = field(default_factory=lambda: _new_id("error"))
    execution_id: str = ""
    workflow_id: str = ""
    step_id: Optional[str] = None
    type: ErrorType = ErrorType.EXECUTION
    severity: ErrorSeverity = ErrorSeverity.LOW
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    max_retries: int = 3
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "step_id": self.step_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "resolved": self.resolved,
        }


@dataclass
class RecoveryStrategy:
    """
    Recovery policy for a class of errors.

    Config keys by type:
    - retry: max_retries, delay_ms, backoff_multiplier
    - skip: log_warning, reason
    - rollback: rollback_steps
    - alternative: fallback_steps, notify_user
    - manual: (none)
    """
    type: RecoveryType = RecoveryType.SKIP
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "config": dict(self.config)}


# === Events & Notifications ===


@dataclass
class WorkflowEvent:
    """An event on the engine's event feed."""
    source: str = ""
    status: str = ""
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: _new_id("evt"))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def workflow_id(self) -> Optional[str]:
        return self.data.get("workflow_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "status": self.status,
            "message": self.message,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class NotificationAction:
    """A named action offered on a notification."""
    id: str
    label: str
    kind: str = "button"  # button | link
    variant: str = "default"  # default | destructive | outline

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "kind": self.kind, "variant": self.variant}


@dataclass
class WorkflowNotification:
    """A user-facing notification."""
    id: str = field(default_factory=lambda: _new_id("notif"))
    type: NotificationType = NotificationType.INFO
    title: str = "Notification"
    message: str = ""
    workflow_id: str = "unknown"
    execution_id: Optional[str] = None
    step_id: Optional[str] = None
    timestamp: float = 0.0  # hub clock seconds
    read: bool = False
    persistent: bool = False
    expires_at: Optional[float] = None
    actions: List[NotificationAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "step_id": self.step_id,
            "timestamp": self.timestamp,
            "read": self.read,
            "persistent": self.persistent,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class WorkflowAlert:
    """A monitoring alert."""
    id: str = field(default_factory=lambda: _new_id("alert"))
    workflow_id: str = ""
    execution_id: str = ""
    type: AlertType = AlertType.WARNING
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "type": self.type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "resolved": self.resolved,
        }


EventCallback = Callable[[WorkflowEvent], Any]
