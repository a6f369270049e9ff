"""
Conduit Notification Step Handler

Send messages from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import structlog

from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.events import EventFeed
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)

NOTIFICATION_STEP_SOURCE = "workflow-notification-step"


class NotificationStepHandler(BaseStepHandler):
    """
    Handler for notification steps.

    Logs the message and, when an event feed is attached, publishes it as
    an event so observers can pick it up.
    """

    step_type = StepType.NOTIFICATION
    required_keys = ("message",)

    def __init__(self, feed: Optional["EventFeed"] = None):
        self.feed = feed

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute a notification step."""
        kind = str(config.get("type") or "info")
        message = str(config.get("message", ""))
        title = str(config.get("title") or "")

        logger.info("sending_notification", type=kind, title=title, message=message)

        if self.feed is not None:
            data: Dict[str, Any] = {"title": title}
            if context is not None:
                data["workflow_id"] = context.execution.workflow_id
                data["execution_id"] = context.execution.id
            self.feed.emit(NOTIFICATION_STEP_SOURCE, kind, message, data)

        return {"sent": True, "type": kind, "message": message}
