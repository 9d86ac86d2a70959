"""
Audit Models for the Finance Tracker

Every engine-initiated change (prorated half-months, generated recurring
budgets, sync passes) is recorded as an audit event. This provides:
1. Traceability of budgets the user did not create by hand
2. Debugging information when a sync pass ends early
3. A record of data-integrity warnings that were skipped, not fixed

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_PRORATED = "budget_prorated"
    BUDGET_UPDATED = "budget_updated"
    RECURRING_BUDGET_GENERATED = "recurring_budget_generated"

    # Categories, accounts and transactions
    CATEGORY_CREATED = "category_created"
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    ACCOUNT_CREATED = "account_created"

    # Data quality
    DATA_INTEGRITY_WARNING = "data_integrity_warning"
    MIGRATION_APPLIED = "migration_applied"

    # Synchronization
    SYNC_STARTED = "sync_started"
    SYNC_SKIPPED_OFFLINE = "sync_skipped_offline"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'budget', 'transaction', 'sync')"
    )
    entity_id: Optional[str] = None

    # For tracking related events (e.g. one sync pass)
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_prorated(category_id, "monthly", 2)
        event = AuditEventBuilder.sync_failed("timeout", correlation_id)
    """

    @staticmethod
    def budget_created(
        budget_id: str,
        category_id: str,
        period_type: str,
        limit: str,
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget created for category {category_id} ({period_type})",
            details={
                "category_id": category_id,
                "period_type": period_type,
                "limit": limit,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def budget_prorated(
        category_id: str,
        period_type: str,
        total_amount: str,
        created: int,
        updated: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_PRORATED,
            entity_type="category",
            entity_id=category_id,
            description=(
                f"{period_type} budget of {total_amount} prorated: "
                f"{created} half-months created, {updated} updated"
            ),
            details={
                "period_type": period_type,
                "total_amount": total_amount,
                "created": created,
                "updated": updated,
            },
        )

    @staticmethod
    def recurring_budget_generated(
        source_budget_id: str,
        new_budget_id: str,
        start_date: str,
        end_date: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_BUDGET_GENERATED,
            entity_type="budget",
            entity_id=new_budget_id,
            description=f"Recurring budget generated for {start_date} - {end_date}",
            details={
                "source_budget_id": source_budget_id,
                "start_date": start_date,
                "end_date": end_date,
            },
        )

    @staticmethod
    def data_integrity_warning(
        entity_type: str,
        entity_id: str,
        problem: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_INTEGRITY_WARNING,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Skipped inconsistent {entity_type}: {problem}",
            details={"problem": problem},
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: str,
        amount: str,
        budgets_updated: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction of {amount} recorded",
            details={
                "amount": amount,
                "budgets_updated": budgets_updated,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_changed(
        transaction_id: str,
        deleted: bool,
        budgets_updated: int,
        changed_fields: Optional[list[str]] = None,
    ) -> AuditEvent:
        """An edit or deletion; budget spend was moved with it."""
        return AuditEvent(
            event_type=(
                AuditEventType.TRANSACTION_DELETED if deleted
                else AuditEventType.TRANSACTION_UPDATED
            ),
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted" if deleted else "Transaction updated",
            details={
                "changed_fields": changed_fields or [],
                "budgets_updated": budgets_updated,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_updated(
        budget_id: str,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget updated: {', '.join(changed_fields)}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def account_created(account_id: str, name: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account created: {name} ({currency})",
            details={"currency": currency},
            is_user_action=True,
        )

    @staticmethod
    def category_created(
        category_id: str,
        name: str,
        parent_id: Optional[str] = None,
    ) -> AuditEvent:
        kind = "Subcategory" if parent_id else "Category"
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=category_id,
            description=f"{kind} created: {name}",
            details={"parent_id": parent_id},
            is_user_action=True,
        )

    @staticmethod
    def migration_applied(
        name: str,
        records_changed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_APPLIED,
            entity_type="migration",
            entity_id=name,
            description=f"Migration {name} applied to {records_changed} records",
            details={"records_changed": records_changed},
        )

    @staticmethod
    def sync_started(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Sync pass started",
        )

    @staticmethod
    def sync_skipped_offline(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_SKIPPED_OFFLINE,
            entity_type="sync",
            correlation_id=correlation_id,
            description="No connectivity, sync deferred",
        )

    @staticmethod
    def sync_completed(
        correlation_id: UUID,
        counts: dict[str, int],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Sync pass completed",
            details=counts,
        )

    @staticmethod
    def sync_failed(
        error_message: str,
        correlation_id: UUID,
        counts: Optional[dict[str, int]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Sync pass ended early",
            details=counts or {},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="system",
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )
