"""Stale-project reminders and their delivery."""

from wbsync.notifications.reminders import ReminderRunResult, ReminderScheduler
from wbsync.notifications.sender import (
    NotificationPayload,
    NotificationSender,
    NotificationType,
    ProjectDigest,
    WebhookNotificationSender,
)

__all__ = [
    "ReminderScheduler",
    "ReminderRunResult",
    "NotificationSender",
    "WebhookNotificationSender",
    "NotificationPayload",
    "NotificationType",
    "ProjectDigest",
]
