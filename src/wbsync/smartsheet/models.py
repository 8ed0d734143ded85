"""Typed views of Smartsheet API objects.

The service speaks camelCase JSON; these models accept it as-is and expose
snake_case attributes. Unknown fields are ignored so API additions never
break parsing. Dump with ``by_alias=True, exclude_none=True`` when sending
objects back.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SmartsheetModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_api(self) -> dict[str, Any]:
        """Serialise for a request body."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Hyperlink(SmartsheetModel):
    """Link attached to a cell."""

    url: str | None = None
    sheet_id: int | None = None
    report_id: int | None = None


class Cell(SmartsheetModel):
    """One cell of a row, addressed by column id."""

    column_id: int | None = None
    value: Any = None
    display_value: str | None = None
    hyperlink: Hyperlink | None = None
    strict: bool | None = None


class Column(SmartsheetModel):
    """Column descriptor. The title is the stable lookup key; ids vary per sheet."""

    id: int
    title: str
    type: str | None = None
    primary: bool = False
    index: int | None = None


class Row(SmartsheetModel):
    """Sheet row. ``parent_id`` carries the sheet's indentation hierarchy."""

    id: int | None = None
    row_number: int | None = None
    parent_id: int | None = None
    sibling_id: int | None = None
    to_top: bool | None = None
    to_bottom: bool | None = None
    expanded: bool | None = None
    cells: list[Cell] = Field(default_factory=list)


class Sheet(SmartsheetModel):
    """Full sheet with columns and rows."""

    id: int
    name: str = ""
    permalink: str | None = None
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)

    def find_row(self, row_id: int) -> Row | None:
        """Return the row with the given id, if present."""
        for row in self.rows:
            if row.id == row_id:
                return row
        return None


class SheetSummary(SmartsheetModel):
    """Sheet entry as listed inside a folder."""

    id: int
    name: str = ""
    permalink: str | None = None


class Folder(SmartsheetModel):
    """Folder with its immediate sheets and subfolders."""

    id: int
    name: str = ""
    permalink: str | None = None
    sheets: list[SheetSummary] = Field(default_factory=list)
    folders: list[Folder] = Field(default_factory=list)


class Webhook(SmartsheetModel):
    """Registered push-notification subscription."""

    id: int
    name: str = ""
    callback_url: str | None = None
    scope: str | None = None
    scope_object_id: int | None = None
    events: list[str] = Field(default_factory=list)
    version: int | None = None
    enabled: bool = False
    status: str | None = None


class WebhookEvent(SmartsheetModel):
    """Single change notification inside a callback.

    Row events carry the row id as ``id``; ``rowId`` is accepted too.
    """

    object_type: str | None = None
    event_type: str | None = None
    id: int | None = None
    row_id: int | None = None
    column_id: int | None = None
    user_id: int | None = None

    @property
    def target_row_id(self) -> int | None:
        return self.row_id if self.row_id is not None else self.id


class WebhookCallback(SmartsheetModel):
    """Body posted to the callback URL, either a challenge or a batch of events."""

    challenge: str | None = None
    nonce: str | None = None
    timestamp: str | None = None
    webhook_id: int | None = None
    scope: str | None = None
    scope_object_id: int | None = None
    events: list[WebhookEvent] = Field(default_factory=list)
