"""Synchronisation pipeline: portfolio reconciliation and WBS sheet mirroring."""

from wbsync.sync.portfolio import (
    PollSummary,
    PortfolioReconciler,
    ReconcileOutcome,
    ReconcileResult,
    handshake_response,
)
from wbsync.sync.wbs import (
    BatchSyncResult,
    DiscoveredSheet,
    SheetSyncResult,
    WbsSyncEngine,
    extract_project_code,
)

__all__ = [
    "PortfolioReconciler",
    "ReconcileOutcome",
    "ReconcileResult",
    "PollSummary",
    "handshake_response",
    "WbsSyncEngine",
    "DiscoveredSheet",
    "SheetSyncResult",
    "BatchSyncResult",
    "extract_project_code",
]
