"""wbsync - Portfolio and WBS synchronization service.

This package keeps a relational store of projects and Work Breakdown
Structure tasks in step with a Smartsheet deployment: approved portfolio
rows are provisioned into per-project WBS folders, and WBS sheets are
mirrored into a local task cache.
"""

__version__ = "0.1.0"
