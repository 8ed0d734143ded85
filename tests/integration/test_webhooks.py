"""Integration tests for the Smartsheet webhook callback and setup endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from wbsync.smartsheet.models import Webhook
from wbsync.sync.portfolio import PortfolioReconciler, ReconcileOutcome, ReconcileResult
from wbsync.web.routes.webhooks import process_webhook_in_background

CALLBACK_URL = "https://wbs.example.com/webhooks/smartsheet"

ROW_UPDATE = {
    "nonce": "n-1",
    "webhookId": 77,
    "scope": "sheet",
    "scopeObjectId": 1000,
    "events": [{"objectType": "row", "eventType": "updated", "id": 9001}],
}


@pytest.mark.asyncio
async def test_handshake_from_body(async_client: AsyncClient) -> None:
    """The verification challenge is echoed in the body and the header."""
    response = await async_client.post(
        "/webhooks/smartsheet", json={"challenge": "abc-123", "webhookId": 77}
    )

    assert response.status_code == 200
    assert response.json() == {"smartsheetHookResponse": "abc-123"}
    assert response.headers["Smartsheet-Hook-Response"] == "abc-123"


@pytest.mark.asyncio
async def test_handshake_from_header(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/webhooks/smartsheet", headers={"Smartsheet-Hook-Challenge": "hdr-1"}
    )

    assert response.json() == {"smartsheetHookResponse": "hdr-1"}


@pytest.mark.asyncio
async def test_handshake_from_query_on_get(async_client: AsyncClient) -> None:
    response = await async_client.get(
        "/webhooks/smartsheet", params={"smartsheetHookChallenge": "q-1"}
    )

    assert response.json() == {"smartsheetHookResponse": "q-1"}

    plain = await async_client.get("/webhooks/smartsheet")
    assert plain.json() == {"status": "ok", "endpoint": "smartsheet-webhook"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [b"{not json", b"[1, 2, 3]", b'{"events": "nope"}', b""],
)
async def test_malformed_payload_is_acknowledged(
    async_client: AsyncClient, content: bytes
) -> None:
    """Bad bodies still get 200 so the sender does not redeliver them."""
    with patch(
        "wbsync.web.routes.webhooks.process_webhook_in_background", new_callable=AsyncMock
    ) as background:
        response = await async_client.post(
            "/webhooks/smartsheet",
            content=content,
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 200
    assert response.json() == {"success": True}
    background.assert_not_called()


@pytest.mark.asyncio
async def test_event_batch_is_acknowledged_and_scheduled(async_client: AsyncClient) -> None:
    with patch(
        "wbsync.web.routes.webhooks.process_webhook_in_background", new_callable=AsyncMock
    ) as background:
        response = await async_client.post(
            "/webhooks/smartsheet",
            json=ROW_UPDATE,
            headers={"X-Correlation-ID": "corr-1"},
        )

    assert response.status_code == 200
    assert response.json() == {"success": True}
    background.assert_called_once()
    reconciler, payload, correlation_id = background.call_args.args
    assert isinstance(reconciler, PortfolioReconciler)
    assert payload == ROW_UPDATE
    assert correlation_id == "corr-1"


@pytest.mark.asyncio
async def test_event_batch_without_client_is_dropped(
    app: FastAPI, async_client: AsyncClient
) -> None:
    app.state.smartsheet_client = None

    with patch(
        "wbsync.web.routes.webhooks.process_webhook_in_background", new_callable=AsyncMock
    ) as background:
        response = await async_client.post("/webhooks/smartsheet", json=ROW_UPDATE)

    assert response.status_code == 200
    background.assert_not_called()


@pytest.mark.asyncio
async def test_process_webhook_in_background_swallows_errors() -> None:
    reconciler = AsyncMock(spec=PortfolioReconciler)
    reconciler.handle_webhook_payload.side_effect = RuntimeError("boom")

    await process_webhook_in_background(reconciler, ROW_UPDATE, "corr-2")

    reconciler.handle_webhook_payload.assert_awaited_once_with(ROW_UPDATE)


@pytest.mark.asyncio
async def test_process_webhook_in_background_runs_reconciler() -> None:
    reconciler = AsyncMock(spec=PortfolioReconciler)
    reconciler.handle_webhook_payload.return_value = [
        ReconcileResult(9001, ReconcileOutcome.PROVISIONED, "P-0007")
    ]

    await process_webhook_in_background(reconciler, ROW_UPDATE)

    reconciler.handle_webhook_payload.assert_awaited_once_with(ROW_UPDATE)


@pytest.mark.asyncio
async def test_setup_registers_and_enables_webhook(
    async_client: AsyncClient, mock_client: AsyncMock
) -> None:
    mock_client.list_webhooks.return_value = []
    mock_client.create_webhook.return_value = Webhook(id=77, enabled=False)
    mock_client.update_webhook.return_value = Webhook(
        id=77, callback_url=CALLBACK_URL, scope_object_id=1000, enabled=True, status="ENABLED"
    )

    response = await async_client.post("/webhooks/smartsheet/setup")

    assert response.status_code == 200
    assert response.json()["id"] == 77
    assert response.json()["enabled"] is True
    mock_client.create_webhook.assert_awaited_once()
    assert mock_client.create_webhook.await_args.args[:2] == (1000, CALLBACK_URL)
    mock_client.update_webhook.assert_awaited_once_with(77, enabled=True)


@pytest.mark.asyncio
async def test_setup_rejects_local_callback(
    app: FastAPI, async_client: AsyncClient, mock_client: AsyncMock
) -> None:
    app.state.config.web.app_base_url = "http://localhost:8000"

    response = await async_client.post("/webhooks/smartsheet/setup")

    assert response.status_code == 422
    mock_client.create_webhook.assert_not_awaited()


@pytest.mark.asyncio
async def test_setup_list_and_delete(async_client: AsyncClient, mock_client: AsyncMock) -> None:
    mock_client.list_webhooks.return_value = [Webhook(id=77, name="hook", enabled=True)]

    listed = await async_client.get("/webhooks/smartsheet/setup")
    deleted = await async_client.delete("/webhooks/smartsheet/setup/77")

    assert [hook["id"] for hook in listed.json()] == [77]
    assert deleted.status_code == 204
    mock_client.delete_webhook.assert_awaited_once_with(77)
