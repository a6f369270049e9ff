"""
Conduit Notification Hub

Converts execution and error events into user-facing notifications:
- Per (source, status, workflow) throttling
- Capacity-bounded store that never evicts persistent notifications
- Automatic expiry of non-persistent notifications
- Named actions with pluggable handlers
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from conduit.workflow.actions.notification import NOTIFICATION_STEP_SOURCE
from conduit.workflow.events import (
    ENGINE_SOURCE,
    ERROR_HANDLER_SOURCE,
    MONITORING_SOURCE,
    EventFeed,
)
from conduit.workflow.types import (
    NotificationAction,
    NotificationType,
    WorkflowEvent,
    WorkflowNotification,
)

logger = structlog.get_logger(__name__)

NotificationSubscriber = Callable[[List[WorkflowNotification]], Any]
ActionHandler = Callable[[WorkflowNotification], Any]

ThrottleKey = Tuple[str, str, str]


class NotificationHub:
    """
    Notification store fed by the engine's event feed.

    Qualifying events are throttled by (source, status, workflow_id): a
    second event with the same key inside the throttle window is dropped.
    When the store is full the oldest non-persistent notification is evicted
    before inserting; persistent notifications are only removed by explicit
    dismissal or age-based cleanup.
    """

    def __init__(
        self,
        feed: Optional[EventFeed] = None,
        throttle_seconds: float = 5.0,
        max_notifications: int = 10,
        auto_dismiss_seconds: float = 10.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.throttle_seconds = throttle_seconds
        self.max_notifications = max_notifications
        self.auto_dismiss_seconds = auto_dismiss_seconds
        self.enabled = enabled
        self.clock = clock

        self._notifications: Dict[str, WorkflowNotification] = {}
        self._throttle: Dict[ThrottleKey, float] = {}
        self._subscribers: List[NotificationSubscriber] = []
        self._action_handlers: Dict[str, ActionHandler] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

        if feed is not None:
            self.attach(feed)

        logger.info("notification_hub_initialized", enabled=enabled)

    # === Feed Wiring ===

    def attach(self, feed: EventFeed) -> None:
        """Start consuming events from a feed."""
        self.detach()
        self._unsubscribe = feed.subscribe(self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_event(self, event: WorkflowEvent) -> Optional[WorkflowNotification]:
        """Convert an event into a notification, subject to throttling."""
        if not self.enabled:
            return None

        fields = self._convert(event)
        if fields is None:
            return None

        key = (event.source, event.status, event.workflow_id or "unknown")
        now = self.clock()
        last = self._throttle.get(key)
        if last is not None and now - last < self.throttle_seconds:
            logger.debug("notification_throttled", source=key[0], status=key[1], workflow_id=key[2])
            return None

        self._throttle[key] = now
        self._cleanup_throttle(now)

        return self.add(**fields)

    def _convert(self, event: WorkflowEvent) -> Optional[Dict[str, Any]]:
        """Notification fields for a qualifying event, None otherwise."""
        data = event.data
        base = {
            "workflow_id": data.get("workflow_id") or "unknown",
            "execution_id": data.get("execution_id"),
            "message": event.message,
        }

        if event.source == ENGINE_SOURCE:
            kind = data.get("event")
            if event.status == "success" and kind == "execution_completed":
                return dict(
                    base,
                    type=NotificationType.SUCCESS,
                    title="Workflow Completed",
                    persistent=False,
                )
            if event.status == "error" and kind == "execution_failed":
                return dict(
                    base,
                    type=NotificationType.ERROR,
                    title="Workflow Failed",
                    persistent=True,
                    actions=[
                        NotificationAction("retry", "Retry"),
                        NotificationAction("view_logs", "View Logs", kind="link", variant="outline"),
                    ],
                )
            if event.status == "warning" and kind == "execution_paused":
                return dict(
                    base,
                    type=NotificationType.WARNING,
                    title="Workflow Paused",
                    persistent=True,
                    actions=[NotificationAction("resume", "Resume")],
                )
            return None

        if event.source == ERROR_HANDLER_SOURCE:
            if event.status == "error" and data.get("severity") == "critical":
                step = data.get("step_name") or data.get("step_id") or "unknown"
                return dict(
                    base,
                    type=NotificationType.ERROR,
                    title="Critical Error",
                    message=f"Critical error in step {step}: {event.message}",
                    step_id=data.get("step_id"),
                    persistent=True,
                    actions=[NotificationAction("investigate", "Investigate", variant="destructive")],
                )
            return None

        if event.source == MONITORING_SOURCE:
            if event.status == "warning" and data.get("type") == "resource":
                return dict(
                    base,
                    type=NotificationType.WARNING,
                    title="Resource Alert",
                    workflow_id="system",
                    persistent=False,
                )
            return None

        if event.source == NOTIFICATION_STEP_SOURCE:
            try:
                kind = NotificationType(event.status)
            except ValueError:
                return None
            return dict(
                base,
                type=kind,
                title=data.get("title") or "Workflow Notification",
                persistent=False,
            )

        return None

    def _cleanup_throttle(self, now: float) -> None:
        horizon = self.throttle_seconds * 2
        stale = [k for k, ts in self._throttle.items() if now - ts > horizon]
        for key in stale:
            del self._throttle[key]

    # === Store ===

    def add(
        self,
        type: NotificationType = NotificationType.INFO,
        title: str = "Notification",
        message: str = "",
        workflow_id: str = "unknown",
        execution_id: Optional[str] = None,
        step_id: Optional[str] = None,
        persistent: bool = False,
        actions: Optional[List[NotificationAction]] = None,
    ) -> WorkflowNotification:
        """Insert a notification, evicting the oldest non-persistent one if full."""
        now = self.clock()
        self._purge_expired(now)

        if len(self._notifications) >= self.max_notifications:
            self._evict_oldest()

        notification = WorkflowNotification(
            type=NotificationType(type),
            title=title,
            message=message,
            workflow_id=workflow_id,
            execution_id=execution_id,
            step_id=step_id,
            timestamp=now,
            persistent=persistent,
            expires_at=None if persistent else now + self.auto_dismiss_seconds,
            actions=list(actions or []),
        )
        self._notifications[notification.id] = notification

        logger.debug(
            "notification_added",
            notification_id=notification.id,
            type=notification.type.value,
            workflow_id=workflow_id,
        )

        self._notify_subscribers()
        return notification

    def _evict_oldest(self) -> None:
        for notification_id, notification in self._notifications.items():
            if not notification.persistent:
                del self._notifications[notification_id]
                logger.debug("notification_evicted", notification_id=notification_id)
                return

    def _purge_expired(self, now: float) -> None:
        expired = [
            nid for nid, n in self._notifications.items()
            if n.expires_at is not None and n.expires_at <= now
        ]
        for nid in expired:
            del self._notifications[nid]

    def get(self, notification_id: str) -> Optional[WorkflowNotification]:
        self._purge_expired(self.clock())
        return self._notifications.get(notification_id)

    def remove(self, notification_id: str) -> bool:
        """Dismiss a notification."""
        removed = self._notifications.pop(notification_id, None) is not None
        if removed:
            self._notify_subscribers()
        return removed

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self._notifications.get(notification_id)
        if not notification:
            return False
        notification.read = True
        self._notify_subscribers()
        return True

    def mark_all_as_read(self) -> None:
        for notification in self._notifications.values():
            notification.read = True
        self._notify_subscribers()

    def list(self) -> List[WorkflowNotification]:
        """Current notifications, newest first."""
        self._purge_expired(self.clock())
        return list(reversed(list(self._notifications.values())))

    def unread(self) -> List[WorkflowNotification]:
        return [n for n in self.list() if not n.read]

    def unread_count(self) -> int:
        return len(self.unread())

    def __len__(self) -> int:
        self._purge_expired(self.clock())
        return len(self._notifications)

    # === Cleanup ===

    def clear_old(self, max_age_seconds: float) -> int:
        """Remove notifications older than max_age_seconds, persistent included."""
        cutoff = self.clock() - max_age_seconds
        old = [nid for nid, n in self._notifications.items() if n.timestamp < cutoff]
        for nid in old:
            del self._notifications[nid]
        if old:
            self._notify_subscribers()
        return len(old)

    def dismiss_all(self) -> None:
        self._notifications.clear()
        self._throttle.clear()
        self._notify_subscribers()

    def dismiss_by_type(self, type: NotificationType) -> int:
        """Dismiss non-persistent notifications of a type."""
        kind = NotificationType(type)
        matched = [
            nid for nid, n in self._notifications.items()
            if n.type == kind and not n.persistent
        ]
        for nid in matched:
            del self._notifications[nid]
        self._notify_subscribers()
        return len(matched)

    # === Subscribers ===

    def subscribe(self, callback: NotificationSubscriber) -> Callable[[], None]:
        """Subscribe to store changes. Called immediately with the current list."""
        self._subscribers.append(callback)
        callback(self.list())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify_subscribers(self) -> None:
        notifications = self.list()
        for callback in list(self._subscribers):
            try:
                callback(notifications)
            except Exception as e:
                logger.error("notification_subscriber_error", error=str(e))

    # === Actions ===

    def register_action_handler(self, action_id: str, handler: ActionHandler) -> None:
        """Bind a callable to a named notification action."""
        self._action_handlers[action_id] = handler

    async def invoke_action(self, notification_id: str, action_id: str) -> Any:
        """
        Run the handler bound to an action offered on a notification.

        Raises:
            KeyError: unknown notification, action not offered, or no handler
        """
        notification = self.get(notification_id)
        if notification is None:
            raise KeyError(f"Notification not found: {notification_id}")

        if action_id not in {a.id for a in notification.actions}:
            raise KeyError(f"Action {action_id} not offered on {notification_id}")

        handler = self._action_handlers.get(action_id)
        if handler is None:
            raise KeyError(f"No handler registered for action: {action_id}")

        logger.info("notification_action", notification_id=notification_id, action=action_id)

        result = handler(notification)
        if asyncio.iscoroutine(result):
            result = await result

        notification.read = True
        self._notify_subscribers()
        return result

    # === Statistics ===

    def get_statistics(self) -> Dict[str, Any]:
        notifications = self.list()
        by_type: Dict[str, int] = {}
        by_workflow: Dict[str, int] = {}
        for n in notifications:
            by_type[n.type.value] = by_type.get(n.type.value, 0) + 1
            by_workflow[n.workflow_id] = by_workflow.get(n.workflow_id, 0) + 1

        return {
            "total": len(notifications),
            "unread": len([n for n in notifications if not n.read]),
            "by_type": by_type,
            "by_workflow": by_workflow,
        }
