"""FastAPI route definitions for the wbsync HTTP surface."""

from __future__ import annotations

from wbsync.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)
from wbsync.web.routes.portfolio import create_portfolio_router
from wbsync.web.routes.projects import (
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    create_projects_router,
)
from wbsync.web.routes.wbs import TaskCreate, TaskUpdate, create_wbs_router
from wbsync.web.routes.webhooks import create_webhooks_router

__all__ = [
    # Health
    "HealthResponse",
    "ReadinessResponse",
    "create_health_router",
    # Portfolio
    "create_portfolio_router",
    # Projects
    "ProjectCreate",
    "ProjectResponse",
    "ProjectUpdate",
    "create_projects_router",
    # WBS
    "TaskCreate",
    "TaskUpdate",
    "create_wbs_router",
    # Webhooks
    "create_webhooks_router",
]
