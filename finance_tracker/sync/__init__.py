"""Local/remote synchronization."""

from finance_tracker.sync.reconciler import (
    SyncReconciler,
    SyncScheduler,
    SyncState,
    merge_budget,
)

__all__ = [
    "SyncReconciler",
    "SyncScheduler",
    "SyncState",
    "merge_budget",
]
