"""
Conduit Event Feed

In-process pub/sub channel between the engine and its observers
(notification hub, monitoring).
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

import structlog

from conduit.workflow.types import EventCallback, WorkflowEvent

logger = structlog.get_logger(__name__)


# Event sources
ENGINE_SOURCE = "workflow-engine"
ERROR_HANDLER_SOURCE = "workflow-error-handler"
MONITORING_SOURCE = "workflow-monitoring"


class EventFeed:
    """
    Synchronous fan-out of workflow events.

    Subscribers are called in registration order. A subscriber that fails
    is logged and does not prevent delivery to the others. Coroutine
    subscribers are scheduled on the running loop.
    """

    def __init__(self, max_history: int = 1000):
        self._subscribers: List[EventCallback] = []
        self._history: Deque[WorkflowEvent] = deque(maxlen=max_history)
        self._pending: set = set()

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to events. Returns an unsubscribe callable."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: WorkflowEvent) -> WorkflowEvent:
        """Deliver an event to every subscriber."""
        self._history.append(event)

        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(functools.partial(self._settle, event))
            except Exception as e:
                logger.warning(
                    "event_subscriber_error",
                    source=event.source,
                    status=event.status,
                    error=str(e),
                )

        return event

    def _settle(self, event: WorkflowEvent, task: "asyncio.Future[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "event_subscriber_error",
                source=event.source,
                status=event.status,
                error=str(error),
            )

    def emit(
        self,
        source: str,
        status: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowEvent:
        """Build and publish an event."""
        return self.publish(
            WorkflowEvent(source=source, status=status, message=message, data=data or {})
        )

    def history(
        self,
        execution_id: Optional[str] = None,
        source: Optional[str] = None,
        limit: int = 100,
    ) -> List[WorkflowEvent]:
        """Recent events, oldest first, optionally filtered."""
        events = list(self._history)
        if execution_id:
            events = [e for e in events if e.data.get("execution_id") == execution_id]
        if source:
            events = [e for e in events if e.source == source]
        return events[-limit:]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
