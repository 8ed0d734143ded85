"""Portfolio reconciliation endpoints.

Routes:
    POST /portfolio/poll - Reconcile every portfolio row (missed-webhook fallback)
    POST /portfolio/rows/{row_id}/reconcile - Reconcile a single row
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from wbsync.logging import get_logger
from wbsync.sync.portfolio import PortfolioReconciler
from wbsync.web.dependencies import get_reconciler

logger = get_logger(__name__)


def create_portfolio_router() -> APIRouter:
    """Create the portfolio router."""
    router = APIRouter(prefix="/portfolio", tags=["portfolio"])

    @router.post("/poll")
    async def poll(
        reconciler: PortfolioReconciler = Depends(get_reconciler),  # noqa: B008
    ) -> dict[str, Any]:
        summary = await reconciler.poll_portfolio()
        return summary.to_dict()

    @router.post("/rows/{row_id}/reconcile")
    async def reconcile_row(
        row_id: int,
        reconciler: PortfolioReconciler = Depends(get_reconciler),  # noqa: B008
    ) -> dict[str, Any]:
        result = await reconciler.reconcile_row(row_id)
        logger.info("portfolio_row_reconciled_via_api", row_id=row_id, outcome=result.outcome.value)
        return result.to_dict()

    return router
