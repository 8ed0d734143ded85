"""Integration tests for portfolio reconciliation and WBS provisioning.

The Smartsheet client is an AsyncMock serving an in-memory portfolio sheet,
WBS parent folder and template copy; the database is in-memory SQLite.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wbsync.config import SmartsheetConfig
from wbsync.database.models.project import ApprovalStatus, ProjectStatus, ProvisioningState
from wbsync.database.queries.audit import list_audit
from wbsync.database.queries.project import (
    begin_provisioning,
    complete_provisioning,
    create_project,
    get_project_by_code,
)
from wbsync.errors import DataIntegrityError, RemoteServiceError
from wbsync.smartsheet.models import Cell, Column, Folder, Row, Sheet, SheetSummary
from wbsync.sync.portfolio import (
    PortfolioReconciler,
    ReconcileOutcome,
    find_wbs_sheet,
    handshake_response,
    wbs_folder_name,
)

APP_BASE_URL = "https://wbs.example.com"
WBS_PERMALINK = "https://app.smartsheet.com/sheets/wbs-5151"

PORTFOLIO_COLUMNS = [
    Column(id=1, title="###"),
    Column(id=2, title="Project Name", primary=True),
    Column(id=3, title="Approval Status"),
    Column(id=4, title="Project Plan"),
    Column(id=5, title="WBS App Link"),
    Column(id=6, title="Assigned To"),
    Column(id=7, title="Approved By"),
    Column(id=8, title="Status"),
]

WBS_SHEET = Sheet(
    id=5151,
    name="Work Breakdown Schedule",
    permalink=WBS_PERMALINK,
    columns=[Column(id=11, title="WBS"), Column(id=12, title="Name", primary=True)],
    rows=[Row(id=7001, cells=[Cell(column_id=12, value="PROJECT")])],
)


def portfolio_row(
    row_id: int,
    code: str | None,
    approval: str = "Approved",
    name: str = "Ward Refurbishment",
) -> Row:
    return Row(
        id=row_id,
        cells=[
            Cell(column_id=1, value=code),
            Cell(column_id=2, value=name),
            Cell(column_id=3, value=approval),
            Cell(column_id=6, value="jforster@example.com"),
            Cell(column_id=7, value="Keith Clark"),
            Cell(column_id=8, value="In Progress"),
        ],
    )


def portfolio_sheet(*rows: Row) -> Sheet:
    return Sheet(id=1000, name="Portfolio", columns=PORTFOLIO_COLUMNS, rows=list(rows))


def wire_client(
    client: AsyncMock,
    portfolio: Sheet,
    existing_folders: list[Folder] | None = None,
    copied_sheets: list[SheetSummary] | None = None,
) -> None:
    """Serve the portfolio, the WBS parent folder and one template copy."""
    sheets = {portfolio.id: portfolio, WBS_SHEET.id: WBS_SHEET}
    if copied_sheets is None:
        copied_sheets = [
            SheetSummary(id=5151, name="Work Breakdown Schedule", permalink=WBS_PERMALINK),
            SheetSummary(id=5152, name="Risk Register"),
        ]
    folders = {
        3000: Folder(id=3000, name="Projects", folders=existing_folders or []),
        4242: Folder(id=4242, name="WBS (#P-0007)", sheets=copied_sheets),
    }

    client.get_sheet.side_effect = lambda sheet_id: sheets[sheet_id]
    client.get_folder.side_effect = lambda folder_id: folders[folder_id]
    client.copy_folder.return_value = Folder(id=4242, name="WBS (#P-0007)")
    client.update_rows.return_value = []


@pytest.fixture
def reconciler(
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
    smartsheet_config: SmartsheetConfig,
) -> PortfolioReconciler:
    return PortfolioReconciler(mock_client, session_factory, smartsheet_config, APP_BASE_URL)


def test_wbs_folder_name() -> None:
    assert wbs_folder_name("P-0007") == "WBS (#P-0007)"


def test_find_wbs_sheet_prefers_exact_name() -> None:
    sheets = [
        SheetSummary(id=1, name="Old work breakdown notes"),
        SheetSummary(id=2, name="Work Breakdown Schedule"),
    ]
    assert find_wbs_sheet(sheets).id == 2
    assert find_wbs_sheet([SheetSummary(id=3, name="Dashboard")]) is None


def test_handshake_response_echoes_challenge() -> None:
    assert handshake_response("abc-123") == {"smartsheetHookResponse": "abc-123"}


@pytest.mark.asyncio
async def test_reconcile_row_provisions_approved_project(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """An approved row gets a template copy, links and a provisioned project."""
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == ReconcileOutcome.PROVISIONED
    assert result.project_code == "P-0007"
    assert result.folder_id == 4242
    assert result.sheet_id == 5151
    mock_client.copy_folder.assert_awaited_once_with(2000, 3000, "WBS (#P-0007)")

    async with session_factory() as session:
        project = await get_project_by_code(session, "P-0007")
        audit = await list_audit(session, target_type="project")

    assert project is not None
    assert project.provisioning_state == ProvisioningState.provisioned
    assert project.approval_status == ApprovalStatus.approved
    assert project.status == ProjectStatus.in_progress
    assert project.title == "Ward Refurbishment"
    assert project.portfolio_row_id == 9001
    assert project.wbs_folder_id == 4242
    assert project.wbs_sheet_id == 5151
    assert project.wbs_sheet_url == WBS_PERMALINK
    assert project.wbs_app_url == f"{APP_BASE_URL}/projects/{project.id}/wbs"
    assert project.assignee == "jforster@example.com"
    assert [entry.action for entry in audit] == ["project.provisioned"]


@pytest.mark.asyncio
async def test_reconcile_row_writes_code_and_portfolio_links(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
) -> None:
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))

    await reconciler.reconcile_row(9001)

    assert mock_client.update_rows.await_count == 2
    code_call, link_call = mock_client.update_rows.await_args_list

    sheet_id, rows = code_call.args
    assert sheet_id == 5151
    assert rows[0].id == 7001
    assert [(cell.column_id, cell.value) for cell in rows[0].cells] == [(12, "P-0007")]

    sheet_id, rows = link_call.args
    assert sheet_id == 1000
    assert rows[0].id == 9001
    plan_cell, app_cell = rows[0].cells
    assert plan_cell.column_id == 4
    assert plan_cell.hyperlink.url == WBS_PERMALINK
    assert app_cell.column_id == 5
    assert app_cell.value.startswith(f"{APP_BASE_URL}/projects/")


@pytest.mark.asyncio
async def test_reconcile_row_twice_provisions_once(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
) -> None:
    """A redelivered event finds the local project already provisioned."""
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))

    first = await reconciler.reconcile_row(9001)
    second = await reconciler.reconcile_row(9001)

    assert first.outcome == ReconcileOutcome.PROVISIONED
    assert second.outcome == ReconcileOutcome.ALREADY_PROVISIONED
    assert second.sheet_id == 5151
    assert mock_client.copy_folder.await_count == 1


@pytest.mark.asyncio
async def test_reconcile_row_skips_existing_remote_folder(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A folder with the same name (any case) blocks a second copy."""
    wire_client(
        mock_client,
        portfolio_sheet(portfolio_row(9001, "P-0007")),
        existing_folders=[Folder(id=31, name="wbs (#p-0007)")],
    )

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == ReconcileOutcome.DUPLICATE_FOLDER
    assert result.folder_id == 31
    mock_client.copy_folder.assert_not_awaited()
    async with session_factory() as session:
        assert await get_project_by_code(session, "P-0007") is None


@pytest.mark.asyncio
async def test_reconcile_row_missing_wbs_sheet_aborts(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A copy without a WBS sheet is an integrity error and nothing is linked."""
    wire_client(
        mock_client,
        portfolio_sheet(portfolio_row(9001, "P-0007")),
        copied_sheets=[SheetSummary(id=5152, name="Risk Register")],
    )

    with pytest.raises(DataIntegrityError, match="Work Breakdown Schedule"):
        await reconciler.reconcile_row(9001)

    mock_client.update_rows.assert_not_awaited()
    async with session_factory() as session:
        project = await get_project_by_code(session, "P-0007")
    assert project is not None
    assert project.provisioning_state == ProvisioningState.unprovisioned
    assert project.wbs_sheet_id is None


@pytest.mark.asyncio
async def test_reconcile_row_copy_failure_aborts(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))
    mock_client.copy_folder.side_effect = RemoteServiceError("copy_folder", 2000, status_code=500)

    with pytest.raises(RemoteServiceError):
        await reconciler.reconcile_row(9001)

    async with session_factory() as session:
        project = await get_project_by_code(session, "P-0007")
    assert project.provisioning_state == ProvisioningState.unprovisioned


@pytest.mark.asyncio
async def test_reconcile_row_link_failure_is_not_fatal(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Link and code writes are best-effort once the copy exists."""
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))
    mock_client.update_rows.side_effect = RemoteServiceError("update_rows", 1000, status_code=500)

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == ReconcileOutcome.PROVISIONED
    async with session_factory() as session:
        project = await get_project_by_code(session, "P-0007")
    assert project.is_provisioned


@pytest.mark.asyncio
async def test_reconcile_row_resumes_interrupted_provisioning(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    async with session_factory() as session:
        project = await create_project(session, "P-0007", "Ward Refurbishment")
        await begin_provisioning(session, project)
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == ReconcileOutcome.PROVISIONED


@pytest.mark.asyncio
async def test_reconcile_row_locally_linked_project_is_not_copied(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    async with session_factory() as session:
        project = await create_project(session, "P-0007", "Ward Refurbishment")
        await complete_provisioning(session, project, folder_id=88, sheet_id=99, sheet_url=None)
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == ReconcileOutcome.ALREADY_PROVISIONED
    assert result.sheet_id == 99
    mock_client.copy_folder.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("row", "outcome"),
    [
        (portfolio_row(9001, "P-0007", approval="Pending Approval"), ReconcileOutcome.NOT_APPROVED),
        (portfolio_row(9001, None), ReconcileOutcome.MISSING_PROJECT_CODE),
        (portfolio_row(9001, "P7"), ReconcileOutcome.INVALID_PROJECT_CODE),
    ],
)
async def test_reconcile_row_ignores_ineligible_rows(
    reconciler: PortfolioReconciler,
    mock_client: AsyncMock,
    row: Row,
    outcome: ReconcileOutcome,
) -> None:
    wire_client(mock_client, portfolio_sheet(row))

    result = await reconciler.reconcile_row(9001)

    assert result.outcome == outcome
    mock_client.get_folder.assert_not_awaited()
    mock_client.copy_folder.assert_not_awaited()


@pytest.mark.asyncio
async def test_reconcile_row_unknown_row(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    wire_client(mock_client, portfolio_sheet())

    result = await reconciler.reconcile_row(404)

    assert result.outcome == ReconcileOutcome.ROW_NOT_FOUND


@pytest.mark.asyncio
async def test_handle_webhook_payload_reconciles_row_updates_only(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    wire_client(mock_client, portfolio_sheet(portfolio_row(9001, "P-0007")))
    payload: dict[str, Any] = {
        "nonce": "n-1",
        "webhookId": 77,
        "scope": "sheet",
        "scopeObjectId": 1000,
        "events": [
            {"objectType": "sheet", "eventType": "updated", "id": 1000},
            {"objectType": "row", "eventType": "created", "id": 9002},
            {"objectType": "cell", "eventType": "updated", "rowId": 9001, "columnId": 3},
            {"objectType": "row", "eventType": "updated", "id": 9001},
        ],
    }

    results = await reconciler.handle_webhook_payload(payload)

    assert [(r.row_id, r.outcome) for r in results] == [(9001, ReconcileOutcome.PROVISIONED)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [None, "not json", {"events": "nope"}, {"events": [{"id": "not-a-number"}]}],
)
async def test_handle_webhook_payload_drops_malformed(
    reconciler: PortfolioReconciler, mock_client: AsyncMock, payload: Any
) -> None:
    assert await reconciler.handle_webhook_payload(payload) == []
    mock_client.get_sheet.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("scope", [{"scopeObjectId": 555}, {"scope": "sheet"}])
async def test_handle_webhook_payload_ignores_other_sheets(
    reconciler: PortfolioReconciler, mock_client: AsyncMock, scope: dict[str, Any]
) -> None:
    """Only callbacks scoped to the portfolio sheet are acted on."""
    payload = {
        **scope,
        "events": [{"objectType": "row", "eventType": "updated", "id": 9001}],
    }
    assert await reconciler.handle_webhook_payload(payload) == []
    mock_client.get_sheet.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_webhook_payload_never_raises(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    mock_client.get_sheet.side_effect = RemoteServiceError("get_sheet", 1000, status_code=503)
    payload = {
        "scopeObjectId": 1000,
        "events": [{"objectType": "row", "eventType": "updated", "id": 9001}],
    }

    assert await reconciler.handle_webhook_payload(payload) == []
    mock_client.get_sheet.assert_awaited_once_with(1000)


@pytest.mark.asyncio
async def test_poll_portfolio_counts_outcomes(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    wire_client(
        mock_client,
        portfolio_sheet(
            portfolio_row(9001, "P-0007"),
            portfolio_row(9002, "P-0008", approval="Pending Approval"),
            portfolio_row(9003, None),
        ),
    )

    summary = await reconciler.poll_portfolio()

    assert summary.checked == 3
    assert summary.provisioned == 1
    assert summary.pending_approval == 1
    assert summary.skipped == 1
    assert summary.errors == 0
    assert summary.to_dict()["results"][0]["outcome"] == "provisioned"


@pytest.mark.asyncio
async def test_poll_portfolio_continues_after_row_failure(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    """One row's failure is counted and the scan goes on."""
    wire_client(
        mock_client,
        portfolio_sheet(portfolio_row(9001, "P-0009"), portfolio_row(9002, "P-0007")),
    )
    mock_client.copy_folder.side_effect = [
        RemoteServiceError("copy_folder", 2000, status_code=500),
        Folder(id=4242, name="WBS (#P-0007)"),
    ]

    summary = await reconciler.poll_portfolio()

    assert summary.errors == 1
    assert summary.failures[0]["row_id"] == 9001
    assert summary.provisioned == 1


@pytest.mark.asyncio
async def test_poll_portfolio_propagates_unreadable_sheet(
    reconciler: PortfolioReconciler, mock_client: AsyncMock
) -> None:
    mock_client.get_sheet.side_effect = RemoteServiceError("get_sheet", 1000, status_code=503)

    with pytest.raises(RemoteServiceError):
        await reconciler.poll_portfolio()
