"""
Conduit Workflow System

Step graph execution with pluggable step handlers, error recovery,
notifications and monitoring.
"""

from conduit.workflow.types import (
    # Enums
    StepType,
    ExecutionStatus,
    StepStatus,
    ConditionOperator,
    ErrorType,
    ErrorSeverity,
    RecoveryType,
    NotificationType,
    AlertType,
    # Definitions
    RetryConfig,
    StepCondition,
    WorkflowStep,
    WorkflowDefinition,
    # Execution
    ResourceUsage,
    ExecutionMetrics,
    StepExecution,
    WorkflowExecution,
    # Errors & recovery
    WorkflowError,
    RecoveryStrategy,
    # Events & notifications
    WorkflowEvent,
    NotificationAction,
    WorkflowNotification,
    WorkflowAlert,
)
from conduit.workflow.engine import WorkflowEngine
from conduit.workflow.registry import WorkflowRegistry
from conduit.workflow.events import EventFeed
from conduit.workflow.actions.executor import StepDispatcher
from conduit.workflow.conditions.evaluator import ConditionEvaluator
from conduit.workflow.execution.context import ExecutionContext
from conduit.workflow.recovery.resolver import RecoveryResolver, RecoveryVerdict
from conduit.workflow.notifications.hub import NotificationHub
from conduit.workflow.monitoring import MetricsAggregator

__all__ = [
    # Enums
    "StepType",
    "ExecutionStatus",
    "StepStatus",
    "ConditionOperator",
    "ErrorType",
    "ErrorSeverity",
    "RecoveryType",
    "NotificationType",
    "AlertType",
    # Definitions
    "RetryConfig",
    "StepCondition",
    "WorkflowStep",
    "WorkflowDefinition",
    # Execution
    "ResourceUsage",
    "ExecutionMetrics",
    "StepExecution",
    "WorkflowExecution",
    # Errors & recovery
    "WorkflowError",
    "RecoveryStrategy",
    # Events & notifications
    "WorkflowEvent",
    "NotificationAction",
    "WorkflowNotification",
    "WorkflowAlert",
    # Components
    "WorkflowEngine",
    "WorkflowRegistry",
    "EventFeed",
    "StepDispatcher",
    "ConditionEvaluator",
    "ExecutionContext",
    "RecoveryResolver",
    "RecoveryVerdict",
    "NotificationHub",
    "MetricsAggregator",
]
