"""Smartsheet integration: REST client, typed models and title-based accessors."""

from wbsync.smartsheet.accessor import (
    PortfolioColumn,
    WbsColumn,
    build_cells,
    find_column_by_title,
    get_cell_value,
    make_cell,
    make_hyperlink_cell,
)
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.models import (
    Cell,
    Column,
    Folder,
    Hyperlink,
    Row,
    Sheet,
    SheetSummary,
    Webhook,
    WebhookCallback,
    WebhookEvent,
)
from wbsync.smartsheet.webhooks import ensure_webhook

__all__ = [
    "SmartsheetClient",
    "ensure_webhook",
    "PortfolioColumn",
    "WbsColumn",
    "find_column_by_title",
    "get_cell_value",
    "make_cell",
    "make_hyperlink_cell",
    "build_cells",
    "Cell",
    "Column",
    "Folder",
    "Hyperlink",
    "Row",
    "Sheet",
    "SheetSummary",
    "Webhook",
    "WebhookCallback",
    "WebhookEvent",
]
