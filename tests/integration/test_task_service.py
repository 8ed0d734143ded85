"""Integration tests for local task mutations and their remote push."""

from __future__ import annotations

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from wbsync.database.models.project import Project, ProjectStatus
from wbsync.database.queries.project import complete_provisioning, create_project
from wbsync.database.queries.wbs_task import mark_task_synced
from wbsync.errors import NotFoundError, RemoteServiceError, ValidationError
from wbsync.smartsheet.models import Column, Row, Sheet
from wbsync.wbs.service import create_task, list_tasks_with_codes, update_task

WBS_SHEET = Sheet(
    id=5010,
    name="Work Breakdown Schedule",
    columns=[
        Column(id=21, title="WBS"),
        Column(id=22, title="Name", primary=True),
        Column(id=24, title="Status"),
        Column(id=25, title="Start Date"),
    ],
)


@pytest_asyncio.fixture
async def project(db_session: AsyncSession) -> Project:
    return await create_project(db_session, "P-0200", "Service Host")


@pytest_asyncio.fixture
async def linked_project(db_session: AsyncSession) -> Project:
    project = await create_project(db_session, "P-0201", "Linked Host")
    return await complete_provisioning(
        db_session, project, folder_id=31, sheet_id=5010, sheet_url=None
    )


@pytest.fixture
def sheet_client(mock_client: AsyncMock) -> AsyncMock:
    mock_client.get_sheet.return_value = WBS_SHEET
    mock_client.add_rows.return_value = [Row(id=9100)]
    mock_client.update_rows.return_value = []
    return mock_client


@pytest.mark.asyncio
async def test_create_task_appends_to_sibling_group(
    db_session: AsyncSession, project: Project
) -> None:
    """New tasks become the last child of their parent."""
    first = await create_task(db_session, None, project.id, "Phase 1")
    second = await create_task(db_session, None, project.id, "Phase 2")
    child = await create_task(db_session, None, project.id, "Design", parent_id=first.task.id)
    sibling = await create_task(db_session, None, project.id, "Build", parent_id=first.task.id)

    assert [first.code, second.code, child.code, sibling.code] == ["1", "2", "1.1", "1.2"]
    assert sibling.task.order_index == 2
    assert first.pushed is False


@pytest.mark.asyncio
async def test_create_task_rejects_foreign_parent(
    db_session: AsyncSession, project: Project
) -> None:
    other = await create_project(db_session, "P-0299", "Other")
    foreign = await create_task(db_session, None, other.id, "Foreign")

    with pytest.raises(ValidationError):
        await create_task(db_session, None, project.id, "Child", parent_id=foreign.task.id)


@pytest.mark.asyncio
async def test_create_task_unknown_project(db_session: AsyncSession) -> None:
    with pytest.raises(NotFoundError):
        await create_task(db_session, None, uuid4(), "Orphan")


@pytest.mark.asyncio
async def test_create_task_pushes_row_to_linked_sheet(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    view = await create_task(
        db_session,
        sheet_client,
        linked_project.id,
        "Kick-off",
        status=ProjectStatus.in_progress,
    )

    assert view.pushed is True
    assert view.task.remote_row_id == 9100
    assert view.task.last_synced_at is not None

    sheet_id, rows = sheet_client.add_rows.await_args.args
    assert sheet_id == 5010
    row = rows[0]
    assert row.to_bottom is True
    assert row.parent_id is None
    assert {cell.column_id: cell.value for cell in row.cells} == {
        21: "1",
        22: "Kick-off",
        24: "In Progress",
    }


@pytest.mark.asyncio
async def test_create_child_task_pushes_under_parent_row(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    parent = await create_task(db_session, sheet_client, linked_project.id, "Phase 1")
    sheet_client.add_rows.return_value = [Row(id=9101, parent_id=9100)]

    child = await create_task(
        db_session, sheet_client, linked_project.id, "Design", parent_id=parent.task.id
    )

    assert child.pushed is True
    assert child.task.remote_row_id == 9101
    _, rows = sheet_client.add_rows.await_args.args
    assert rows[0].parent_id == 9100


@pytest.mark.asyncio
async def test_create_task_skips_push_when_parent_not_on_sheet(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    parent = await create_task(db_session, None, linked_project.id, "Local only")

    child = await create_task(
        db_session, sheet_client, linked_project.id, "Child", parent_id=parent.task.id
    )

    assert child.pushed is False
    assert child.code == "1.1"
    sheet_client.add_rows.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_task_push_failure_keeps_local_task(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    sheet_client.add_rows.side_effect = RemoteServiceError("add_rows", 5010, status_code=500)

    view = await create_task(db_session, sheet_client, linked_project.id, "Kept")

    assert view.pushed is False
    assert view.task.remote_row_id is None
    tasks = await list_tasks_with_codes(db_session, linked_project.id)
    assert [t.task.name for t in tasks] == ["Kept"]


@pytest.mark.asyncio
async def test_list_tasks_with_codes_in_wbs_order(
    db_session: AsyncSession, project: Project
) -> None:
    phase_1 = await create_task(db_session, None, project.id, "Phase 1")
    await create_task(db_session, None, project.id, "Phase 2")
    for number in range(10):
        await create_task(db_session, None, project.id, f"Step {number}", parent_id=phase_1.task.id)

    views = await list_tasks_with_codes(db_session, project.id)
    codes = [view.code for view in views]

    assert codes[:3] == ["1", "1.1", "1.2"]
    assert codes[-2:] == ["1.10", "2"]
    assert views[0].to_dict()["wbs_code"] == "1"


@pytest.mark.asyncio
async def test_update_task_pushes_synced_row(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    view = await create_task(db_session, sheet_client, linked_project.id, "Design")

    updated = await update_task(db_session, sheet_client, view.task.id, name="Detailed design")

    assert updated.pushed is True
    assert updated.task.name == "Detailed design"
    _, rows = sheet_client.update_rows.await_args.args
    assert rows[0].id == 9100
    assert {cell.column_id: cell.value for cell in rows[0].cells}[22] == "Detailed design"


@pytest.mark.asyncio
async def test_update_task_without_remote_row_stays_local(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    view = await create_task(db_session, None, linked_project.id, "Local")

    updated = await update_task(db_session, sheet_client, view.task.id, notes="offline")

    assert updated.pushed is False
    sheet_client.update_rows.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_task_push_failure_is_not_fatal(
    db_session: AsyncSession, linked_project: Project, sheet_client: AsyncMock
) -> None:
    view = await create_task(db_session, None, linked_project.id, "Design")
    await mark_task_synced(db_session, view.task, remote_row_id=9200)
    sheet_client.update_rows.side_effect = RemoteServiceError("update_rows", 5010)

    updated = await update_task(db_session, sheet_client, view.task.id, budget="$1")

    assert updated.pushed is False
    assert updated.task.budget == "$1"


@pytest.mark.asyncio
async def test_update_task_move_appends_to_new_parent(
    db_session: AsyncSession, project: Project
) -> None:
    """A task moved to another parent becomes that parent's last child."""
    phase_1 = await create_task(db_session, None, project.id, "Phase 1")
    await create_task(db_session, None, project.id, "Phase 2")
    design = await create_task(db_session, None, project.id, "Design", parent_id=phase_1.task.id)
    assert design.task.order_index == 1

    moved = await update_task(db_session, None, design.task.id, parent_id=None)

    assert moved.task.parent_id is None
    assert moved.task.order_index == 3
    assert moved.code == "3"
    views = await list_tasks_with_codes(db_session, project.id)
    assert [(view.task.name, view.code) for view in views] == [
        ("Phase 1", "1"),
        ("Phase 2", "2"),
        ("Design", "3"),
    ]


@pytest.mark.asyncio
async def test_update_task_move_keeps_explicit_order_index(
    db_session: AsyncSession, project: Project
) -> None:
    phase_1 = await create_task(db_session, None, project.id, "Phase 1")
    phase_2 = await create_task(db_session, None, project.id, "Phase 2")
    await create_task(db_session, None, project.id, "Build", parent_id=phase_2.task.id)
    design = await create_task(db_session, None, project.id, "Design", parent_id=phase_1.task.id)

    moved = await update_task(
        db_session, None, design.task.id, parent_id=phase_2.task.id, order_index=0
    )

    assert moved.task.order_index == 0
    assert moved.code == "2.1"
