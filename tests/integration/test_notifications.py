"""Integration tests for the workflow webhook notification sender."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

from wbsync.config import ReminderConfig
from wbsync.notifications.sender import (
    NotificationPayload,
    NotificationType,
    ProjectDigest,
    WebhookNotificationSender,
)

WEBHOOK_URL = "https://flows.example.com/webhook/wbs-reminders"

DIGEST = ProjectDigest(
    project_code="P-0007",
    title="Theatre refurbishment",
    status="At_Risk",
    last_update_at=datetime(2026, 9, 1, tzinfo=timezone.utc),
    wbs_app_url="https://wbs.example.com/projects/p-0007",
)


def test_payload_to_dict() -> None:
    payload = NotificationPayload(
        notification_type=NotificationType.ESCALATION,
        recipient="kclark@example.com",
        timestamp=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc),
        projects=[DIGEST],
    )

    data = payload.to_dict()

    assert data["notification_type"] == "escalation"
    assert data["timestamp"] == "2026-10-01T09:00:00+00:00"
    assert data["project_count"] == 1
    assert data["projects"][0]["last_update_at"] == "2026-09-01T00:00:00+00:00"


@respx.mock
@pytest.mark.asyncio
async def test_send_weekly_reminder_success() -> None:
    route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200, json={"ok": True}))
    sender = WebhookNotificationSender(
        ReminderConfig(notification_webhook_url=WEBHOOK_URL, notification_auth_header="Bearer s3")
    )

    result = await sender.send_weekly_reminder("jforster@example.com", [DIGEST])
    await sender.close()

    assert result is True
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer s3"
    body = json.loads(request.content)
    assert body["notification_type"] == "weekly_reminder"
    assert body["recipient"] == "jforster@example.com"
    assert body["projects"][0]["project_code"] == "P-0007"


@respx.mock
@pytest.mark.asyncio
async def test_send_failure_status() -> None:
    respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(500, text="Internal Error"))
    sender = WebhookNotificationSender(ReminderConfig(notification_webhook_url=WEBHOOK_URL))

    result = await sender.send_escalation_notification("kclark@example.com", [DIGEST])
    await sender.close()

    assert result is False


@respx.mock
@pytest.mark.asyncio
async def test_send_network_error() -> None:
    respx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("Connection failed"))
    sender = WebhookNotificationSender(ReminderConfig(notification_webhook_url=WEBHOOK_URL))

    result = await sender.send_weekly_reminder("jforster@example.com", [DIGEST])
    await sender.close()

    assert result is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "config",
    [
        ReminderConfig(enabled=False, notification_webhook_url=WEBHOOK_URL),
        ReminderConfig(notification_webhook_url=None),
    ],
)
async def test_send_skipped_when_unconfigured(config: ReminderConfig) -> None:
    """Nothing is posted, and the skip counts as delivered."""
    with respx.mock(assert_all_called=False) as mock:
        route = mock.post(WEBHOOK_URL)
        sender = WebhookNotificationSender(config)

        result = await sender.send_weekly_reminder("jforster@example.com", [DIGEST])

    assert result is True
    assert not route.called
