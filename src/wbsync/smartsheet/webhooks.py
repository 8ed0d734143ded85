"""Portfolio webhook registration.

Keeps exactly one enabled webhook pointing at this service's callback URL
for the portfolio sheet.
"""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import urlparse

import structlog

from wbsync.smartsheet.client import DEFAULT_WEBHOOK_EVENTS, SmartsheetClient
from wbsync.smartsheet.models import Webhook

logger = structlog.get_logger(__name__)

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def is_public_callback(callback_url: str) -> bool:
    """Smartsheet cannot reach local addresses, so those are never registered."""
    host = urlparse(callback_url).hostname
    return bool(host) and host not in LOCAL_HOSTS


async def ensure_webhook(
    client: SmartsheetClient,
    sheet_id: int,
    callback_url: str,
    name: str,
    events: Sequence[str] = DEFAULT_WEBHOOK_EVENTS,
) -> Webhook | None:
    """Make sure an enabled webhook for ``sheet_id`` calls ``callback_url``.

    An enabled match is kept as-is. Disabled or stale matches are deleted
    and replaced by a new webhook, which is then enabled (enabling triggers
    the verification handshake against the callback URL).

    Returns:
        The active webhook, or None when the callback URL is not public.

    Raises:
        RemoteServiceError: If any webhook call fails.
    """
    if not is_public_callback(callback_url):
        logger.info("webhook_registration_skipped", callback_url=callback_url)
        return None

    existing = [
        hook
        for hook in await client.list_webhooks()
        if hook.callback_url == callback_url and hook.scope_object_id == sheet_id
    ]
    for hook in existing:
        if hook.enabled:
            logger.info("webhook_already_enabled", webhook_id=hook.id, sheet_id=sheet_id)
            return hook

    for hook in existing:
        await client.delete_webhook(hook.id)
        logger.info("webhook_stale_deleted", webhook_id=hook.id, status=hook.status)

    created = await client.create_webhook(sheet_id, callback_url, name, events)
    enabled = await client.update_webhook(created.id, enabled=True)
    logger.info(
        "webhook_registered",
        webhook_id=enabled.id,
        sheet_id=sheet_id,
        enabled=enabled.enabled,
        status=enabled.status,
    )
    return enabled
