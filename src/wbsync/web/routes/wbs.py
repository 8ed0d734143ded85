"""WBS sync and task endpoints.

Routes:
    POST /wbs/sync - Sync every discovered WBS sheet
    GET /wbs/discover - List discovered WBS sheets
    PUT /wbs/tasks/{task_id} - Update a task and push it to its sheet row
    POST /projects/{project_id}/wbs/sync - Sync one project's linked sheet
    GET /projects/{project_id}/wbs - Cached tasks with WBS codes
    POST /projects/{project_id}/wbs/tasks - Create a task and push it
    DELETE /projects/{project_id}/wbs/cache - Clear a project's task cache
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, Field

from wbsync.database.models.project import ProjectStatus
from wbsync.database.queries import audit as audit_queries
from wbsync.database.queries import wbs_task as task_queries
from wbsync.database.queries.project import require_project
from wbsync.logging import get_logger
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.sync.wbs import WbsSyncEngine
from wbsync.wbs import service as task_service
from wbsync.web.dependencies import (
    get_actor,
    get_optional_client,
    get_session_factory,
    get_sync_engine,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class TaskCreate(BaseModel):
    """Request schema for creating a WBS task."""

    name: str = Field(..., min_length=1, max_length=500)
    parent_id: UUID | None = None
    description: str | None = None
    owner_last_name: str | None = None
    status: ProjectStatus = ProjectStatus.not_started
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: str | None = None


class TaskUpdate(BaseModel):
    """Request schema for updating a WBS task. Only provided fields change."""

    name: str | None = Field(default=None, min_length=1, max_length=500)
    parent_id: UUID | None = None
    description: str | None = None
    owner_last_name: str | None = None
    approver_last_name: str | None = None
    status: ProjectStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: str | None = None
    actual: str | None = None
    variance: str | None = None
    notes: str | None = None


def create_wbs_router() -> APIRouter:
    """Create the WBS router."""
    router = APIRouter(tags=["wbs"])

    @router.post("/wbs/sync")
    async def sync_all(
        folder_id: int | None = None,
        engine: WbsSyncEngine = Depends(get_sync_engine),  # noqa: B008
    ) -> dict[str, Any]:
        batch = await engine.sync_all(folder_id)
        return batch.to_dict()

    @router.get("/wbs/discover")
    async def discover(
        folder_id: int | None = None,
        engine: WbsSyncEngine = Depends(get_sync_engine),  # noqa: B008
    ) -> list[dict[str, Any]]:
        sheets = await engine.discover_sheets(folder_id)
        return [sheet.to_dict() for sheet in sheets]

    @router.post("/projects/{project_id}/wbs/sync")
    async def sync_project(
        project_id: UUID,
        engine: WbsSyncEngine = Depends(get_sync_engine),  # noqa: B008
    ) -> dict[str, Any]:
        result = await engine.sync_project(project_id)
        return result.to_dict()

    @router.get("/projects/{project_id}/wbs")
    async def list_tasks(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> list[dict[str, Any]]:
        async with session_factory() as session:
            views = await task_service.list_tasks_with_codes(session, project_id)
        return [view.to_dict() for view in views]

    @router.post("/projects/{project_id}/wbs/tasks", status_code=http_status.HTTP_201_CREATED)
    async def create_task(
        project_id: UUID,
        task_data: TaskCreate,
        client: SmartsheetClient | None = Depends(get_optional_client),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> dict[str, Any]:
        async with session_factory() as session:
            view = await task_service.create_task(
                session,
                client,
                project_id,
                **task_data.model_dump(),
            )
        logger.info(
            "wbs_task_created_via_api",
            task_id=str(view.task.id),
            wbs_code=view.code,
            pushed=view.pushed,
        )
        return view.to_dict()

    @router.put("/wbs/tasks/{task_id}")
    async def update_task(
        task_id: UUID,
        task_data: TaskUpdate,
        client: SmartsheetClient | None = Depends(get_optional_client),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> dict[str, Any]:
        updates = task_data.model_dump(exclude_unset=True)
        if not updates:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="No fields to update",
            )
        async with session_factory() as session:
            view = await task_service.update_task(session, client, task_id, **updates)
        return view.to_dict()

    @router.delete("/projects/{project_id}/wbs/cache")
    async def clear_cache(
        project_id: UUID,
        actor: str = Depends(get_actor),
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> dict[str, Any]:
        async with session_factory() as session:
            await require_project(session, project_id)
            removed = await task_queries.clear_project_tasks(session, project_id)
            await audit_queries.record_audit(
                session,
                action="wbs_cache.cleared",
                target_type="project",
                target_id=str(project_id),
                actor=actor,
                payload={"removed": removed},
            )
        return {"project_id": str(project_id), "removed": removed}

    return router
