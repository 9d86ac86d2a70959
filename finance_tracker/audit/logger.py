"""
Audit Logger

DESIGN DECISION: Every change the engines make on their own (prorated
half-months, generated recurring budgets, sync passes) is logged.
This provides:
1. Traceability of budgets nobody typed in by hand
2. Debugging capability when a sync pass ends early
3. A record of inconsistent data that was skipped

The audit logger:
- Gracefully handles failures (never breaks the business flow it observes)
- Supports correlation IDs to trace related events
- Can keep the events in memory for inspection
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and, when `keep_events` is
    set, appends them to `events`.
    """

    def __init__(self, keep_events: bool = False):
        self._keep_events = keep_events
        self.events: list[AuditEvent] = []
        self._logger = structlog.get_logger("finance_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if logging failed; never raises.
        """
        try:
            log_dict = event.to_log_dict()
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            structlog.get_logger().error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

        if self._keep_events:
            self.events.append(event)
        return True

    def events_of(self, event_type) -> list[AuditEvent]:
        """Kept events of one type."""
        return [event for event in self.events if event.event_type == event_type]

    async def log_budget_created(
        self,
        budget_id: str,
        category_id: str,
        period_type: str,
        limit: str,
        is_user_action: bool = True,
    ) -> None:
        """Log budget creation."""
        event = AuditEventBuilder.budget_created(
            budget_id=budget_id,
            category_id=category_id,
            period_type=period_type,
            limit=limit,
            is_user_action=is_user_action,
        )
        await self.log(event)

    async def log_budget_prorated(
        self,
        category_id: str,
        period_type: str,
        total_amount: str,
        created: int,
        updated: int,
    ) -> None:
        """Log a proration run."""
        event = AuditEventBuilder.budget_prorated(
            category_id=category_id,
            period_type=period_type,
            total_amount=total_amount,
            created=created,
            updated=updated,
        )
        await self.log(event)

    async def log_recurrence_generated(
        self,
        source_budget_id: str,
        new_budget_id: str,
        start_date: str,
        end_date: str,
    ) -> None:
        """Log a generated recurring budget."""
        event = AuditEventBuilder.recurring_budget_generated(
            source_budget_id=source_budget_id,
            new_budget_id=new_budget_id,
            start_date=start_date,
            end_date=end_date,
        )
        await self.log(event)

    async def log_integrity_warning(
        self,
        entity_type: str,
        entity_id: str,
        problem: str,
    ) -> None:
        """Log a skipped inconsistent record."""
        event = AuditEventBuilder.data_integrity_warning(
            entity_type=entity_type,
            entity_id=entity_id,
            problem=problem,
        )
        await self.log(event)

    async def log_transaction_recorded(
        self,
        transaction_id: str,
        amount: str,
        budgets_updated: int,
    ) -> None:
        event = AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            amount=amount,
            budgets_updated=budgets_updated,
        )
        await self.log(event)

    async def log_transaction_changed(
        self,
        transaction_id: str,
        deleted: bool,
        budgets_updated: int,
        changed_fields: Optional[list[str]] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_changed(
            transaction_id=transaction_id,
            deleted=deleted,
            budgets_updated=budgets_updated,
            changed_fields=changed_fields,
        )
        await self.log(event)

    async def log_budget_updated(self, budget_id: str, changed_fields: list[str]) -> None:
        await self.log(AuditEventBuilder.budget_updated(budget_id, changed_fields))

    async def log_account_created(self, account_id: str, name: str, currency: str) -> None:
        await self.log(AuditEventBuilder.account_created(account_id, name, currency))

    async def log_category_created(
        self,
        category_id: str,
        name: str,
        parent_id: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.category_created(
            category_id=category_id,
            name=name,
            parent_id=parent_id,
        )
        await self.log(event)

    async def log_migration_applied(self, name: str, records_changed: int) -> None:
        event = AuditEventBuilder.migration_applied(
            name=name,
            records_changed=records_changed,
        )
        await self.log(event)

    async def log_sync_started(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.sync_started(correlation_id))

    async def log_sync_skipped_offline(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.sync_skipped_offline(correlation_id))

    async def log_sync_completed(
        self,
        correlation_id: UUID,
        counts: dict[str, int],
    ) -> None:
        """Log a finished sync pass with its pull/push counts."""
        event = AuditEventBuilder.sync_completed(
            correlation_id=correlation_id,
            counts=counts,
        )
        await self.log(event)

    async def log_sync_failed(
        self,
        error_message: str,
        correlation_id: UUID,
        counts: Optional[dict[str, int]] = None,
    ) -> None:
        """Log a sync pass that ended early."""
        event = AuditEventBuilder.sync_failed(
            error_message=error_message,
            correlation_id=correlation_id,
            counts=counts,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a sync pass or user action and pass it
    through all subsequent operations.
    """
    return uuid4()
