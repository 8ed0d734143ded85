"""Local WBS task mutations with best-effort remote push.

Tasks are written to the local cache first. When the project has a linked
WBS sheet the change is then pushed as a sheet row; a remote failure is
logged and leaves the local write in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from wbsync.database.models.project import ProjectStatus
from wbsync.database.models.wbs_task import WbsTask
from wbsync.database.queries import wbs_task as task_queries
from wbsync.database.queries.project import require_project
from wbsync.errors import RemoteServiceError, ValidationError
from wbsync.smartsheet.accessor import WbsColumn, build_cells
from wbsync.smartsheet.client import SmartsheetClient
from wbsync.smartsheet.models import Row
from wbsync.sync.fields import format_date, status_to_label
from wbsync.wbs.codes import compute_wbs_codes, next_order_index

logger = structlog.get_logger(__name__)


@dataclass
class TaskWithCode:
    """A cached task together with its derived WBS code."""

    task: WbsTask
    code: str
    pushed: bool = False

    def to_dict(self) -> dict[str, Any]:
        task = self.task
        return {
            "id": str(task.id),
            "project_id": str(task.project_id),
            "parent_id": str(task.parent_id) if task.parent_id else None,
            "remote_row_id": task.remote_row_id,
            "wbs_code": self.code,
            "name": task.name,
            "description": task.description,
            "owner_last_name": task.owner_last_name,
            "approver_last_name": task.approver_last_name,
            "status": task.status.value,
            "start_date": task.start_date.isoformat() if task.start_date else None,
            "end_date": task.end_date.isoformat() if task.end_date else None,
            "at_risk": task.at_risk,
            "budget": task.budget,
            "actual": task.actual,
            "variance": task.variance,
            "notes": task.notes,
            "order_index": task.order_index,
            "last_synced_at": task.last_synced_at.isoformat() if task.last_synced_at else None,
            "pushed": self.pushed,
        }


def _code_sort_key(code: str) -> tuple[int, ...]:
    return tuple(int(part) for part in code.split("."))


def _task_cells(task: WbsTask, code: str) -> dict[str, Any]:
    return {
        WbsColumn.WBS: code,
        WbsColumn.NAME: task.name,
        WbsColumn.DESCRIPTION: task.description,
        WbsColumn.ASSIGNED_TO: task.owner_last_name,
        WbsColumn.STATUS: status_to_label(task.status),
        WbsColumn.START_DATE: format_date(task.start_date),
        WbsColumn.END_DATE: format_date(task.end_date),
        WbsColumn.BUDGET: task.budget,
    }


async def list_tasks_with_codes(
    session: AsyncSession,
    project_id: UUID,
) -> list[TaskWithCode]:
    """All cached tasks of a project in WBS order.

    Raises:
        NotFoundError: If the project does not exist.
        DataIntegrityError: If the task tree is broken.
    """
    await require_project(session, project_id)
    tasks = await task_queries.list_project_tasks(session, project_id)
    codes = compute_wbs_codes(tasks)
    views = [TaskWithCode(task, codes[task.id]) for task in tasks]
    views.sort(key=lambda view: _code_sort_key(view.code))
    return views


async def create_task(
    session: AsyncSession,
    client: SmartsheetClient | None,
    project_id: UUID,
    name: str,
    parent_id: UUID | None = None,
    description: str | None = None,
    owner_last_name: str | None = None,
    status: ProjectStatus = ProjectStatus.not_started,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    budget: str | None = None,
) -> TaskWithCode:
    """Create a task as the last child of its sibling group and push it.

    Args:
        session: Active async database session.
        client: Smartsheet client, or None to skip the remote push.
        project_id: Owning project.
        name: Task name.
        parent_id: Parent task in the same project, None for top level.
        description: Optional description.
        owner_last_name: Assignee last name.
        status: Initial status.
        start_date: Planned start.
        end_date: Planned end.
        budget: Budget text.

    Returns:
        The new task, its WBS code and whether the remote push succeeded.

    Raises:
        NotFoundError: If the project does not exist.
        ValidationError: If the input is malformed or the parent is foreign.
    """
    project = await require_project(session, project_id)
    tasks = await task_queries.list_project_tasks(session, project_id)
    by_id = {task.id: task for task in tasks}
    if parent_id is not None and parent_id not in by_id:
        raise ValidationError(f"Parent task {parent_id} does not belong to project {project_id}")

    task = await task_queries.create_task(
        session,
        project_id,
        name,
        order_index=next_order_index(tasks, parent_id),
        parent_id=parent_id,
        description=description,
        owner_last_name=owner_last_name,
        status=status,
        start_date=start_date,
        end_date=end_date,
        budget=budget,
    )
    code = compute_wbs_codes([*tasks, task])[task.id]

    pushed = False
    if client is not None and project.wbs_sheet_id is not None:
        parent = by_id.get(parent_id) if parent_id is not None else None
        pushed = await _push_new_row(
            session, client, project.wbs_sheet_id, task, code, parent
        )

    return TaskWithCode(task, code, pushed)


async def update_task(
    session: AsyncSession,
    client: SmartsheetClient | None,
    task_id: UUID,
    **updates: Any,
) -> TaskWithCode:
    """Update a task locally, then mirror the change onto its sheet row.

    Raises:
        NotFoundError: If the task does not exist.
        ValidationError: If an update is malformed.
        DataIntegrityError: If a parent change would break the tree.
    """
    task = await task_queries.update_task(session, task_id, **updates)
    project = await require_project(session, task.project_id)
    tasks = await task_queries.list_project_tasks(session, task.project_id)
    code = compute_wbs_codes(tasks)[task.id]

    pushed = False
    if client is not None and project.wbs_sheet_id is not None and task.remote_row_id is not None:
        pushed = await _push_row_update(session, client, project.wbs_sheet_id, task, code)

    return TaskWithCode(task, code, pushed)


async def _push_new_row(
    session: AsyncSession,
    client: SmartsheetClient,
    sheet_id: int,
    task: WbsTask,
    code: str,
    parent: WbsTask | None,
) -> bool:
    if parent is not None and parent.remote_row_id is None:
        logger.info("wbs_task_push_skipped", task_id=str(task.id), reason="parent_not_on_sheet")
        return False

    try:
        sheet = await client.get_sheet(sheet_id)
        row = Row(
            parent_id=parent.remote_row_id if parent is not None else None,
            to_bottom=True,
            cells=build_cells(sheet.columns, _task_cells(task, code)),
        )
        created = await client.add_rows(sheet_id, [row])
    except RemoteServiceError as e:
        logger.warning("wbs_task_push_failed", task_id=str(task.id), error=str(e))
        return False

    remote_row_id = created[0].id if created else None
    await task_queries.mark_task_synced(session, task, remote_row_id)
    logger.info("wbs_task_pushed", task_id=str(task.id), remote_row_id=remote_row_id)
    return True


async def _push_row_update(
    session: AsyncSession,
    client: SmartsheetClient,
    sheet_id: int,
    task: WbsTask,
    code: str,
) -> bool:
    try:
        sheet = await client.get_sheet(sheet_id)
        row = Row(id=task.remote_row_id, cells=build_cells(sheet.columns, _task_cells(task, code)))
        await client.update_rows(sheet_id, [row])
    except RemoteServiceError as e:
        logger.warning("wbs_task_update_push_failed", task_id=str(task.id), error=str(e))
        return False

    await task_queries.mark_task_synced(session, task)
    return True
