"""Title-based access to Smartsheet columns and cells.

Column ids are assigned per sheet, so every lookup of a well-known field goes
through its title. A missing column means the sheet lacks that feature:
reads yield ``None`` and writes skip the cell.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from wbsync.smartsheet.models import Cell, Column, Hyperlink, Row


class PortfolioColumn:
    """Column titles of the portfolio sheet."""

    PROJECT_CODE = "###"
    PROJECT_NAME = "Project Name"
    APPROVAL_STATUS = "Approval Status"
    PROJECT_PLAN = "Project Plan"
    WBS_APP_LINK = "WBS App Link"
    ASSIGNED_TO = "Assigned To"
    APPROVED_BY = "Approved By"
    STATUS = "Status"
    CATEGORY = "Category"
    DESCRIPTION = "Description"
    BUDGET = "Budget"
    START_DATE = "Start Date"
    END_DATE = "End Date"
    LAST_UPDATE = "Last Update"


class WbsColumn:
    """Column titles of a project WBS sheet."""

    WBS = "WBS"
    NAME = "Name"
    DESCRIPTION = "Description"
    ASSIGNED_TO = "Assigned To"
    APPROVER = "Approver"
    STATUS = "Status"
    START_DATE = "Start Date"
    END_DATE = "End Date"
    BUDGET = "Budget"
    ACTUAL = "Actual"
    VARIANCE = "Variance"
    NOTES = "Notes"
    AT_RISK = "At Risk"


APPROVED = "Approved"


def find_column_by_title(columns: Iterable[Column], title: str) -> Column | None:
    """Return the column whose title matches exactly (case-sensitive)."""
    for column in columns:
        if column.title == title:
            return column
    return None


def get_cell(row: Row, columns: Iterable[Column], title: str) -> Cell | None:
    """Return the row's cell under the titled column, if both exist."""
    column = find_column_by_title(columns, title)
    if column is None:
        return None
    for cell in row.cells:
        if cell.column_id == column.id:
            return cell
    return None


def get_cell_value(row: Row, columns: Iterable[Column], title: str) -> Any:
    """Return the cell value under the titled column.

    Falls back to the display value when the raw value is empty; ``None``
    if the column or the cell is absent.
    """
    cell = get_cell(row, columns, title)
    if cell is None:
        return None
    if cell.value is not None:
        return cell.value
    return cell.display_value


def get_cell_text(row: Row, columns: Iterable[Column], title: str) -> str | None:
    """Cell value as stripped text, ``None`` when blank."""
    value = get_cell_value(row, columns, title)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def make_cell(column_id: int, value: Any) -> Cell:
    return Cell(column_id=column_id, value=value)


def make_hyperlink_cell(column_id: int, url: str, text: str) -> Cell:
    """Cell showing ``text`` and linking to ``url``."""
    return Cell(column_id=column_id, value=text, hyperlink=Hyperlink(url=url))


def build_cells(columns: Sequence[Column], values: Mapping[str, Any]) -> list[Cell]:
    """Build cells for a row write from ``{title: value}``.

    Titles the sheet lacks and ``None`` values are skipped.
    """
    cells = []
    for title, value in values.items():
        if value is None:
            continue
        column = find_column_by_title(columns, title)
        if column is None:
            continue
        cells.append(make_cell(column.id, value))
    return cells
