"""Conduit workflow execution state."""

from conduit.workflow.execution.context import ExecutionContext

__all__ = ["ExecutionContext"]
