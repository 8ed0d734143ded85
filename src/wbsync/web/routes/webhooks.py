"""Inbound Smartsheet webhook endpoints.

The callback always answers 200 quickly: a verification challenge is echoed
unmodified, and event batches are acknowledged before reconciliation runs
as a background task. Malformed bodies are acknowledged too, since an error
status would only make Smartsheet redeliver the same payload.

Routes:
    POST /webhooks/smartsheet - Event callback and handshake
    GET /webhooks/smartsheet - Handshake via query parameter
    POST /webhooks/smartsheet/setup - Register the portfolio webhook
    GET /webhooks/smartsheet/setup - List registered webhooks
    DELETE /webhooks/smartsheet/setup/{webhook_id} - Delete a webhook
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi import status as http_status

from wbsync.config import WbsyncConfig
from wbsync.errors import ValidationError
from wbsync.logging import get_correlation_id, get_logger, set_correlation_id
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.webhooks import ensure_webhook
from wbsync.sync.portfolio import PortfolioReconciler, handshake_response
from wbsync.web.dependencies import get_config, get_session_factory, get_smartsheet_client

logger = get_logger(__name__)

CHALLENGE_HEADER = "Smartsheet-Hook-Challenge"
RESPONSE_HEADER = "Smartsheet-Hook-Response"
ACK = {"success": True}


async def process_webhook_in_background(
    reconciler: PortfolioReconciler,
    payload: dict[str, Any],
    correlation_id: str | None = None,
) -> None:
    """Run reconciliation after the acknowledgment has been sent.

    Failures are logged only; the sender never learns about them.
    """
    set_correlation_id(correlation_id)
    try:
        results = await reconciler.handle_webhook_payload(payload)
        logger.info(
            "webhook_processed",
            rows=len(results),
            outcomes=[result.outcome.value for result in results],
        )
    except Exception:
        logger.exception("webhook_background_failed")
    finally:
        set_correlation_id(None)


def _extract_challenge(request: Request, body: Any) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("challenge"), str):
        return body["challenge"]
    return request.headers.get(CHALLENGE_HEADER) or request.query_params.get(
        "smartsheetHookChallenge"
    )


def _handshake(challenge: str) -> Response:
    response = Response(
        content=json.dumps(handshake_response(challenge)),
        media_type="application/json",
    )
    response.headers[RESPONSE_HEADER] = challenge
    return response


def create_webhooks_router() -> APIRouter:
    """Create the Smartsheet webhook router."""
    router = APIRouter(prefix="/webhooks/smartsheet", tags=["webhooks"])

    @router.post("")
    async def receive(request: Request, background_tasks: BackgroundTasks) -> Any:
        raw = await request.body()
        try:
            body: Any = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("webhook_body_unparseable", size=len(raw))
            body = None

        challenge = _extract_challenge(request, body)
        if challenge is not None:
            logger.info("webhook_handshake")
            return _handshake(challenge)

        if not isinstance(body, dict) or not isinstance(body.get("events"), list):
            logger.warning(
                "webhook_payload_unrecognized",
                body_type=type(body).__name__,
                keys=sorted(body) if isinstance(body, dict) else None,
            )
            return ACK

        client: SmartsheetClient | None = getattr(request.app.state, "smartsheet_client", None)
        if client is None:
            logger.error("webhook_dropped_no_client", events=len(body["events"]))
            return ACK

        config: WbsyncConfig = get_config(request)
        reconciler = PortfolioReconciler(
            client,
            get_session_factory(request),
            config.smartsheet,
            config.web.app_base_url,
        )
        background_tasks.add_task(
            process_webhook_in_background, reconciler, body, get_correlation_id()
        )
        logger.info(
            "webhook_accepted",
            events=len(body["events"]),
            webhook_id=body.get("webhookId"),
        )
        return ACK

    @router.get("")
    async def verify(request: Request) -> Any:
        challenge = _extract_challenge(request, None)
        if challenge is not None:
            return _handshake(challenge)
        return {"status": "ok", "endpoint": "smartsheet-webhook"}

    @router.post("/setup")
    async def register(
        config: WbsyncConfig = Depends(get_config),  # noqa: B008
        client: SmartsheetClient = Depends(get_smartsheet_client),  # noqa: B008
    ) -> dict[str, Any]:
        """Create (or keep) the enabled portfolio webhook."""
        webhook = await ensure_webhook(
            client,
            config.smartsheet.portfolio_sheet_id,
            config.web.webhook_callback_url,
            config.smartsheet.webhook_name,
        )
        if webhook is None:
            raise ValidationError(
                f"Callback URL {config.web.webhook_callback_url} is not publicly reachable"
            )
        return webhook.model_dump()

    @router.get("/setup")
    async def list_registered(
        client: SmartsheetClient = Depends(get_smartsheet_client),  # noqa: B008
    ) -> list[dict[str, Any]]:
        return [webhook.model_dump() for webhook in await client.list_webhooks()]

    @router.delete("/setup/{webhook_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_registered(
        webhook_id: int,
        client: SmartsheetClient = Depends(get_smartsheet_client),  # noqa: B008
    ) -> None:
        await client.delete_webhook(webhook_id)
        logger.info("webhook_deleted_via_api", webhook_id=webhook_id)

    return router
