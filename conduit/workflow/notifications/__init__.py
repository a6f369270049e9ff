"""User-facing notifications derived from workflow events."""

from conduit.workflow.notifications.hub import NotificationHub

__all__ = ["NotificationHub"]
