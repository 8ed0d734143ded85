"""Conversions between Smartsheet cell values and local field values."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from wbsync.database.models.project import ApprovalStatus, ProjectStatus

_STATUS_KEYWORDS: tuple[tuple[tuple[str, ...], ProjectStatus], ...] = (
    (("complete", "done"), ProjectStatus.complete),
    (("progress",), ProjectStatus.in_progress),
    (("blocked", "stuck"), ProjectStatus.blocked),
    (("risk",), ProjectStatus.at_risk),
    (("hold",), ProjectStatus.on_hold),
)

_APPROVAL_LABELS = {
    "approved": ApprovalStatus.approved,
    "denied": ApprovalStatus.denied,
    "rejected": ApprovalStatus.denied,
}


def status_from_label(label: Any) -> ProjectStatus:
    """Map a free-text sheet status to a ProjectStatus, defaulting to not started."""
    if label is None:
        return ProjectStatus.not_started
    text = str(label).lower()
    for keywords, status in _STATUS_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return status
    return ProjectStatus.not_started


def status_to_label(status: ProjectStatus) -> str:
    """Sheet label for a status, e.g. ``In_Progress`` -> ``In Progress``."""
    return status.value.replace("_", " ")


def approval_from_label(label: Any) -> ApprovalStatus:
    if label is None:
        return ApprovalStatus.pending_approval
    return _APPROVAL_LABELS.get(str(label).strip().lower(), ApprovalStatus.pending_approval)


def extract_last_name(identity: Any) -> str | None:
    """Reduce a person reference from a sheet to a last name.

    Handles ``jforster@example.com`` (local part minus the first initial),
    ``Approver, Keith Clark``, ``Keith Clark`` and single words.
    """
    if identity is None:
        return None
    text = str(identity).strip()
    if not text:
        return None

    if "@" in text:
        parts = re.split(r"[._]", text.split("@", 1)[0])
        local = parts[-1]
        # jforster@ carries a leading initial, keith.clark@ does not
        if len(parts) == 1 and len(local) > 1:
            local = local[1:]
        return local.capitalize() or None

    if "," in text:
        name_part = text.split(",", 1)[1].strip()
        if name_part:
            return name_part.split()[-1]

    words = text.split()
    if len(words) > 1:
        return words[-1]
    return text.capitalize()


def parse_date(value: Any) -> datetime | None:
    """Parse a sheet date or datetime into an aware UTC datetime.

    Unparseable values yield None rather than failing the row.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(value: datetime | None) -> str | None:
    """Date-only ISO string, the format Smartsheet date columns accept."""
    if value is None:
        return None
    return value.date().isoformat()


def parse_flag(value: Any) -> bool:
    """Checkbox and flag columns arrive as bools or truthy text."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"true", "yes", "y", "1", "checked"}


def text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
