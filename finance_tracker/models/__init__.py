"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data persisted locally or mirrored remotely must conform to these schemas.
"""

from finance_tracker.models.finance import (
    Account,
    AccountType,
    AlertLevel,
    BalanceSummary,
    Budget,
    Category,
    CategoryAggregate,
    CategoryType,
    CategoryWithChildren,
    PeriodType,
    RecurrenceFrequency,
    SubcategoryAggregate,
    SyncReport,
    SyncStatus,
    Transaction,
    UserSettings,
    new_id,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountType",
    "AlertLevel",
    "BalanceSummary",
    "Budget",
    "Category",
    "CategoryAggregate",
    "CategoryType",
    "CategoryWithChildren",
    "PeriodType",
    "RecurrenceFrequency",
    "SubcategoryAggregate",
    "SyncReport",
    "SyncStatus",
    "Transaction",
    "UserSettings",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
