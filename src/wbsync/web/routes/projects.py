"""Project CRUD endpoints for wbsync.

Thin REST wrappers over the project queries. Every create, update and
delete appends an audit entry naming the caller (``X-Actor`` header).
Errors from the query layer surface through the application's error
handler as structured responses.

Example:
    >>> from fastapi import FastAPI
    >>> from wbsync.web.routes.projects import create_projects_router
    >>>
    >>> app = FastAPI()
    >>> app.include_router(create_projects_router())
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, Field

from wbsync.database.models.project import ApprovalStatus, ProjectStatus, ProvisioningState
from wbsync.database.queries import audit as audit_queries
from wbsync.database.queries import project as project_queries
from wbsync.logging import get_logger
from wbsync.web.dependencies import get_actor, get_session_factory

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class ProjectCreate(BaseModel):
    """Request schema for creating a new project.

    Attributes:
        project_code: Unique ``LETTERS-DDDD`` code
        title: Project name (1-255 characters)
        description: Optional description
        category: Optional portfolio category
        status: Initial lifecycle status
        assignee: Identity of the assignee
        approver: Identity of the approver
    """

    project_code: str = Field(..., min_length=3, max_length=32)
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = None
    status: ProjectStatus = ProjectStatus.not_started
    assignee: str | None = None
    approver: str | None = None


class ProjectUpdate(BaseModel):
    """Request schema for updating a project. Only provided fields change."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = None
    status: ProjectStatus | None = None
    approval_status: ApprovalStatus | None = None
    assignee: str | None = None
    approver: str | None = None


class ProjectResponse(BaseModel):
    """Response schema for project data."""

    id: UUID
    project_code: str
    title: str
    description: str | None
    category: str | None
    status: ProjectStatus
    approval_status: ApprovalStatus
    provisioning_state: ProvisioningState
    portfolio_row_id: int | None
    wbs_folder_id: int | None
    wbs_sheet_id: int | None
    wbs_sheet_url: str | None
    wbs_app_url: str | None
    assignee: str | None
    approver: str | None
    last_update_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def create_projects_router() -> APIRouter:
    """Create projects router with CRUD endpoints.

    Routes:
        GET /projects/ - List projects, optionally filtered
        GET /projects/{project_id} - Get project by ID
        POST /projects/ - Create new project
        PUT /projects/{project_id} - Update project
        DELETE /projects/{project_id} - Delete project
    """
    router = APIRouter(prefix="/projects", tags=["projects"])

    @router.get("/", response_model=list[ProjectResponse])
    async def list_projects(
        status: ProjectStatus | None = None,
        provisioning_state: ProvisioningState | None = None,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> list[ProjectResponse]:
        async with session_factory() as session:
            projects = await project_queries.list_projects(
                session=session,
                status_filter=status,
                provisioning_filter=provisioning_state,
            )

        logger.info("projects_listed", count=len(projects))
        return [ProjectResponse.model_validate(p) for p in projects]

    @router.get("/{project_id}", response_model=ProjectResponse)
    async def get_project(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> ProjectResponse:
        async with session_factory() as session:
            project = await project_queries.require_project(session, project_id)
        return ProjectResponse.model_validate(project)

    @router.post("/", response_model=ProjectResponse, status_code=http_status.HTTP_201_CREATED)
    async def create_project(
        project_data: ProjectCreate,
        actor: str = Depends(get_actor),
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> ProjectResponse:
        async with session_factory() as session:
            project = await project_queries.create_project(
                session=session,
                project_code=project_data.project_code,
                title=project_data.title,
                description=project_data.description,
                category=project_data.category,
                status=project_data.status,
                assignee=project_data.assignee,
                approver=project_data.approver,
            )
            await audit_queries.record_audit(
                session,
                action="project.created",
                target_type="project",
                target_id=str(project.id),
                actor=actor,
                payload=project_data.model_dump(mode="json"),
            )

        logger.info("project_created_via_api", project_id=str(project.id), actor=actor)
        return ProjectResponse.model_validate(project)

    @router.put("/{project_id}", response_model=ProjectResponse)
    async def update_project(
        project_id: UUID,
        project_data: ProjectUpdate,
        actor: str = Depends(get_actor),
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> ProjectResponse:
        updates = project_data.model_dump(exclude_unset=True, exclude_none=True)
        if not updates:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="No fields to update",
            )

        async with session_factory() as session:
            project = await project_queries.update_project(session, project_id, **updates)
            await audit_queries.record_audit(
                session,
                action="project.updated",
                target_type="project",
                target_id=str(project_id),
                actor=actor,
                payload=project_data.model_dump(mode="json", exclude_unset=True),
            )

        logger.info(
            "project_updated_via_api",
            project_id=str(project_id),
            fields_updated=list(updates.keys()),
        )
        return ProjectResponse.model_validate(project)

    @router.delete("/{project_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_project(
        project_id: UUID,
        actor: str = Depends(get_actor),
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> None:
        async with session_factory() as session:
            deleted = await project_queries.delete_project(session, project_id)
            if deleted:
                await audit_queries.record_audit(
                    session,
                    action="project.deleted",
                    target_type="project",
                    target_id=str(project_id),
                    actor=actor,
                )

        if not deleted:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"Project {project_id} not found",
            )

        logger.info("project_deleted_via_api", project_id=str(project_id), actor=actor)

    return router
