"""
Finance Tracker - Source Package

A family finance tracker: transactions, a two-level category tree and
period-based budgets, stored locally and mirrored to a remote store.

DESIGN PRINCIPLES:
1. The local store is the source of truth while offline
2. Half-month budgets are the atomic unit; longer periods are prorated
3. Engine-created records are idempotent on their natural key
4. Sync is best effort and retried, never a hard failure
5. Storage and remote layers are swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
