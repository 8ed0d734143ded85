"""Notification delivery through a workflow webhook.

Reminder and escalation messages are posted as JSON to an automation
workflow (e.g. n8n or Power Automate), which formats and emails them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

import httpx

from wbsync.config import ReminderConfig
from wbsync.logging import get_logger

logger = get_logger(__name__)


class NotificationType(str, Enum):
    """Kinds of notifications sent to the workflow."""

    WEEKLY_REMINDER = "weekly_reminder"
    ESCALATION = "escalation"


@dataclass
class ProjectDigest:
    """Project summary included in a notification."""

    project_code: str
    title: str
    status: str
    last_update_at: datetime | None = None
    wbs_app_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_code": self.project_code,
            "title": self.title,
            "status": self.status,
            "last_update_at": self.last_update_at.isoformat() if self.last_update_at else None,
            "wbs_app_url": self.wbs_app_url,
        }


@dataclass
class NotificationPayload:
    """Standard payload format for notification webhooks."""

    notification_type: NotificationType
    recipient: str
    timestamp: datetime
    projects: list[ProjectDigest] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert payload to dictionary for JSON serialization."""
        return {
            "notification_type": self.notification_type.value,
            "recipient": self.recipient,
            "timestamp": self.timestamp.isoformat(),
            "project_count": len(self.projects),
            "projects": [project.to_dict() for project in self.projects],
        }


class NotificationSender(Protocol):
    """Anything able to deliver reminder and escalation notifications."""

    async def send_weekly_reminder(self, recipient: str, projects: list[ProjectDigest]) -> bool: ...

    async def send_escalation_notification(
        self, recipient: str, projects: list[ProjectDigest]
    ) -> bool: ...


class WebhookNotificationSender:
    """Sends notifications to a workflow webhook over HTTP."""

    def __init__(
        self,
        config: ReminderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, payload: NotificationPayload) -> bool:
        """Post a payload to the workflow webhook.

        Returns True if delivered (or notifications are disabled), False otherwise.
        """
        if not self.config.enabled or not self.config.notification_webhook_url:
            logger.debug(
                "notifications_disabled",
                notification_type=payload.notification_type.value,
                recipient=payload.recipient,
            )
            return True

        try:
            client = await self._get_client()
            headers = {"Content-Type": "application/json"}
            if self.config.notification_auth_header:
                headers["Authorization"] = self.config.notification_auth_header

            response = await client.post(
                self.config.notification_webhook_url,
                json=payload.to_dict(),
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.error(
                "notification_error",
                notification_type=payload.notification_type.value,
                recipient=payload.recipient,
                error=str(e),
            )
            return False

        if response.is_success:
            logger.info(
                "notification_sent",
                notification_type=payload.notification_type.value,
                recipient=payload.recipient,
                project_count=len(payload.projects),
            )
            return True

        logger.warning(
            "notification_failed",
            notification_type=payload.notification_type.value,
            recipient=payload.recipient,
            status_code=response.status_code,
            response_text=response.text[:200],
        )
        return False

    async def send_weekly_reminder(self, recipient: str, projects: list[ProjectDigest]) -> bool:
        """Remind an assignee about their stale projects."""
        return await self.send(
            NotificationPayload(
                notification_type=NotificationType.WEEKLY_REMINDER,
                recipient=recipient,
                timestamp=datetime.now(timezone.utc),
                projects=projects,
            )
        )

    async def send_escalation_notification(
        self, recipient: str, projects: list[ProjectDigest]
    ) -> bool:
        """Tell an approver about stale projects that are blocked or at risk."""
        return await self.send(
            NotificationPayload(
                notification_type=NotificationType.ESCALATION,
                recipient=recipient,
                timestamp=datetime.now(timezone.utc),
                projects=projects,
            )
        )
