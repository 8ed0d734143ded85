"""Async Smartsheet REST client.

Single point of contact with the Smartsheet API. Reads are retried once on
a transient failure (transport error, timeout, HTTP 429 or 5xx); writes are
issued exactly once because row creation and folder copies are not
idempotent. Every failure surfaces as ``RemoteServiceError``.

Example usage:
    >>> from wbsync.config import SmartsheetConfig
    >>> async with SmartsheetClient(SmartsheetConfig(access_token="...")) as client:
    ...     sheet = await client.get_sheet(6732698911461252)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

import httpx
import structlog

from wbsync.config import SmartsheetConfig
from wbsync.errors import RemoteServiceError
from wbsync.smartsheet.models import Folder, Row, Sheet, Webhook

logger = structlog.get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

DEFAULT_WEBHOOK_EVENTS = ("*.*",)


class SmartsheetClient:
    """Async client for the Smartsheet REST API.

    The client holds only the configured credential; it is constructed
    explicitly and passed to the reconciler and sync engine.

    Attributes:
        config: Smartsheet connection settings
    """

    def __init__(
        self,
        config: SmartsheetConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: SmartsheetConfig with token, base URL and timeouts
            transport: Optional httpx transport, used by tests
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SmartsheetClient:
        """Async context manager entry."""
        self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def open(self) -> None:
        """Create the underlying HTTP client if it is not open yet."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers={
                    "Authorization": f"Bearer {self.config.access_token}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("SmartsheetClient must be opened before use")
        return self._client

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        target_id: int | None = None,
        *,
        retry: bool = False,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Issue one API call, retrying once on a transient failure if allowed.

        Returns:
            Decoded JSON body with any ``{"message", "result"}`` envelope removed

        Raises:
            RemoteServiceError: If the call fails after the retry policy
        """
        client = self._get_client()
        attempts = 2 if retry else 1

        for attempt in range(1, attempts + 1):
            can_retry = attempt < attempts
            try:
                response = await client.request(method, path, params=params, json=json)
            except httpx.TransportError as e:
                if can_retry:
                    logger.warning(
                        "smartsheet_transient_error",
                        operation=operation,
                        target_id=target_id,
                        attempt=attempt,
                        error=str(e),
                    )
                    await asyncio.sleep(self.config.retry_backoff_seconds)
                    continue
                logger.error(
                    "smartsheet_request_failed",
                    operation=operation,
                    target_id=target_id,
                    error=str(e),
                )
                raise RemoteServiceError(operation, target_id, str(e) or type(e).__name__) from e

            if response.status_code in TRANSIENT_STATUS_CODES and can_retry:
                logger.warning(
                    "smartsheet_transient_status",
                    operation=operation,
                    target_id=target_id,
                    attempt=attempt,
                    status_code=response.status_code,
                )
                await asyncio.sleep(self.config.retry_backoff_seconds)
                continue

            if response.is_error:
                message = _error_message(response)
                logger.error(
                    "smartsheet_api_error",
                    operation=operation,
                    target_id=target_id,
                    status_code=response.status_code,
                    message=message,
                )
                raise RemoteServiceError(
                    operation, target_id, message, status_code=response.status_code
                )

            logger.debug(
                "smartsheet_request_ok",
                operation=operation,
                target_id=target_id,
                status_code=response.status_code,
            )
            if not response.content:
                return None
            try:
                body = response.json()
            except ValueError as e:
                logger.error(
                    "smartsheet_invalid_body",
                    operation=operation,
                    target_id=target_id,
                    status_code=response.status_code,
                    content_type=response.headers.get("content-type"),
                )
                raise RemoteServiceError(
                    operation,
                    target_id,
                    "response body is not JSON",
                    status_code=response.status_code,
                ) from e
            return _unwrap(body)

        # Unreachable: the final attempt either returns or raises
        raise RemoteServiceError(operation, target_id, "retries exhausted")

    # Sheets and rows

    async def get_sheet(self, sheet_id: int) -> Sheet:
        """Fetch a full sheet (columns and rows)."""
        data = await self._request(
            "get_sheet", "GET", f"/sheets/{sheet_id}", sheet_id, retry=True
        )
        return Sheet.model_validate(data)

    async def add_rows(self, sheet_id: int, rows: Sequence[Row]) -> list[Row]:
        """Add rows; returns the created rows with their new ids."""
        data = await self._request(
            "add_rows",
            "POST",
            f"/sheets/{sheet_id}/rows",
            sheet_id,
            json=[row.to_api() for row in rows],
        )
        return [Row.model_validate(item) for item in _as_list(data)]

    async def update_rows(self, sheet_id: int, rows: Sequence[Row]) -> list[Row]:
        """Update existing rows, matched by row id."""
        data = await self._request(
            "update_rows",
            "PUT",
            f"/sheets/{sheet_id}/rows",
            sheet_id,
            json=[row.to_api() for row in rows],
        )
        return [Row.model_validate(item) for item in _as_list(data)]

    async def delete_rows(self, sheet_id: int, row_ids: Iterable[int]) -> list[int]:
        """Delete rows by id; returns the ids the service reports as deleted."""
        ids = ",".join(str(row_id) for row_id in row_ids)
        data = await self._request(
            "delete_rows",
            "DELETE",
            f"/sheets/{sheet_id}/rows",
            sheet_id,
            params={"ids": ids},
        )
        return [int(item) for item in _as_list(data)]

    # Folders

    async def get_folder(self, folder_id: int) -> Folder:
        """Fetch a folder with its immediate sheets and subfolders."""
        data = await self._request(
            "get_folder", "GET", f"/folders/{folder_id}", folder_id, retry=True
        )
        return Folder.model_validate(data)

    async def create_folder(self, parent_id: int, name: str) -> Folder:
        """Create an empty subfolder."""
        data = await self._request(
            "create_folder",
            "POST",
            f"/folders/{parent_id}/folders",
            parent_id,
            json={"name": name},
        )
        return Folder.model_validate(data)

    async def copy_folder(
        self,
        source_folder_id: int,
        dest_parent_id: int,
        new_name: str,
    ) -> Folder:
        """Deep-copy a folder under a new parent.

        ``include=all`` copies sheets, reports and dashboards; the service
        re-points cross-sheet references inside the copy.
        """
        data = await self._request(
            "copy_folder",
            "POST",
            f"/folders/{source_folder_id}/copy",
            source_folder_id,
            params={"include": "all"},
            json={
                "destinationType": "folder",
                "destinationId": dest_parent_id,
                "newName": new_name,
            },
        )
        return Folder.model_validate(data)

    # Webhooks

    async def create_webhook(
        self,
        sheet_id: int,
        callback_url: str,
        name: str,
        events: Sequence[str] = DEFAULT_WEBHOOK_EVENTS,
    ) -> Webhook:
        """Register a sheet-scoped webhook. New webhooks start disabled."""
        data = await self._request(
            "create_webhook",
            "POST",
            "/webhooks",
            sheet_id,
            json={
                "name": name,
                "callbackUrl": callback_url,
                "scope": "sheet",
                "scopeObjectId": sheet_id,
                "events": list(events),
                "version": 1,
            },
        )
        return Webhook.model_validate(data)

    async def list_webhooks(self) -> list[Webhook]:
        """List every webhook owned by the token's user."""
        data = await self._request(
            "list_webhooks",
            "GET",
            "/webhooks",
            retry=True,
            params={"includeAll": "true"},
        )
        return [Webhook.model_validate(item) for item in _as_list(data)]

    async def update_webhook(self, webhook_id: int, enabled: bool) -> Webhook:
        """Enable or disable a webhook; enabling triggers the handshake."""
        data = await self._request(
            "update_webhook",
            "PUT",
            f"/webhooks/{webhook_id}",
            webhook_id,
            json={"enabled": enabled},
        )
        return Webhook.model_validate(data)

    async def delete_webhook(self, webhook_id: int) -> None:
        """Delete a webhook."""
        await self._request(
            "delete_webhook", "DELETE", f"/webhooks/{webhook_id}", webhook_id
        )


def _unwrap(body: Any) -> Any:
    """Strip the ``{"message": "SUCCESS", "result": ...}`` write envelope."""
    if isinstance(body, dict) and "result" in body and "message" in body:
        return body["result"]
    return body


def _as_list(data: Any) -> list[Any]:
    """Normalise list payloads, which may be bare, paged (``data``) or single."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return [data]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body)[:200]
    return str(body)[:200]
