"""
Conduit - Workflow Execution Engine

Runs declared graphs of named steps against a shared variable space:
- Dependency and condition gated execution
- Retry with backoff and strategy-based error recovery
- Throttled, capacity-bounded user notifications
- Execution monitoring and alerts
"""

__version__ = "1.0.0"

from conduit.core.config import ConduitConfig
from conduit.workflow.engine import WorkflowEngine

__all__ = ["ConduitConfig", "WorkflowEngine", "__version__"]
