"""Error taxonomy shared by the sync pipeline and the web layer.

Each error carries a ``classification`` string so the web layer can return
structured responses without inspecting exception types one by one.
"""

from __future__ import annotations


class WbsyncError(Exception):
    """Base exception for wbsync errors."""

    classification = "internal_error"


class RemoteServiceError(WbsyncError):
    """Raised when a Smartsheet call fails after the retry policy.

    Attributes:
        operation: Client operation name (e.g. ``get_sheet``)
        target_id: Sheet, folder, or webhook id the call addressed
        status_code: HTTP status returned by the service, if any
    """

    classification = "remote_service_error"

    def __init__(
        self,
        operation: str,
        target_id: int | None = None,
        message: str = "",
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.target_id = target_id
        self.status_code = status_code
        text = f"Smartsheet {operation} failed"
        if target_id is not None:
            text += f" for {target_id}"
        if status_code is not None:
            text += f" (HTTP {status_code})"
        if message:
            text += f": {message}"
        super().__init__(text)


class DataIntegrityError(WbsyncError):
    """Raised for structural problems that abort the current unit of work."""

    classification = "data_integrity_error"


class ValidationError(WbsyncError):
    """Raised for malformed input, before any mutation happens."""

    classification = "validation_error"


class NotFoundError(WbsyncError):
    """Raised when a required entity does not exist."""

    classification = "not_found"
