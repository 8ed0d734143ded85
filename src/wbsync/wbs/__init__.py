"""WBS code derivation and local task service."""

from wbsync.wbs.codes import compute_wbs_codes, next_order_index, wbs_code_for

__all__ = ["compute_wbs_codes", "next_order_index", "wbs_code_for"]
