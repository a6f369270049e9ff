"""
Conduit Step Handlers

One handler per step type:
- Engine-internal: data-transform, condition, notification, http-request
- Collaborator-backed: retrieval-query, agent-delegate, tool-invoke,
  reasoning-call
"""

from conduit.workflow.actions.agent import AgentStepHandler
from conduit.workflow.actions.collaborators import (
    DelegationBackend,
    ReasoningBackend,
    SearchBackend,
    ToolBackend,
)
from conduit.workflow.actions.data import DataTransformStepHandler
from conduit.workflow.actions.executor import (
    BaseStepHandler,
    ConditionStepHandler,
    StepDispatcher,
)
from conduit.workflow.actions.http import HttpStepHandler
from conduit.workflow.actions.notification import NotificationStepHandler
from conduit.workflow.actions.reasoning import ReasoningStepHandler
from conduit.workflow.actions.retrieval import RetrievalStepHandler
from conduit.workflow.actions.tool import ToolStepHandler

__all__ = [
    "AgentStepHandler",
    "BaseStepHandler",
    "ConditionStepHandler",
    "DataTransformStepHandler",
    "DelegationBackend",
    "HttpStepHandler",
    "NotificationStepHandler",
    "ReasoningBackend",
    "ReasoningStepHandler",
    "RetrievalStepHandler",
    "SearchBackend",
    "StepDispatcher",
    "ToolBackend",
    "ToolStepHandler",
]
