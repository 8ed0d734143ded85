"""Web interface for wbsync.

FastAPI application exposing the Smartsheet webhook callback, portfolio
polling, WBS sync and task endpoints, and project CRUD.
"""

from __future__ import annotations

from wbsync.web.app import create_app
from wbsync.web.middleware import RequestLoggingMiddleware

__all__ = [
    "create_app",
    "RequestLoggingMiddleware",
]
