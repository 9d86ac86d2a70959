"""
Sync Reconciler

Keeps the local store and the remote store in step. One pass:

1. Connectivity check. Offline is a deferred retry, not a failure.
2. Pull categories, transactions and budgets. Remote records missing
   locally are inserted as synced; budgets known on both sides are merged
   field by field, the remote value winning whenever it is set.
3. Push local pending transactions and budgets with an idempotent upsert
   keyed by id, then mark them synced.

Pull always precedes push, so a record uploaded earlier in the same pass
is never downloaded back as a conflicting copy.

DESIGN DECISIONS:
- Re-entrancy is guarded by a per-instance state machine
  (idle -> running -> idle | failed). `try_reconcile()` while a pass is
  running returns None immediately.
- Remote and network errors end the pass early, are logged, leave pending
  records pending and are never raised. Local storage errors propagate.
- The guard is released in `finally`, whatever the pass raised.
- A pending local budget that was edited after the remote copy keeps its
  values: it is the last write and goes out in this pass's push.
"""

import asyncio
from enum import Enum
from typing import Any, Optional, Type

import structlog
from pydantic import ValidationError as ModelValidationError

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import get_settings
from finance_tracker.models.finance import (
    Budget,
    Category,
    SyncReport,
    SyncedRecord,
    Transaction,
    utc_now,
)
from finance_tracker.services.connectivity import ConnectivityChecker
from finance_tracker.services.remote.interface import (
    RemoteError,
    RemoteGateway,
    RemoteRecord,
    RemoteTable,
)
from finance_tracker.services.storage.repository import (
    BudgetRepository,
    CategoryRepository,
    SyncedRepository,
    TransactionRepository,
    UserSettingsRepository,
)


logger = structlog.get_logger(__name__)

# Local bookkeeping, never taken from the remote copy
_LOCAL_ONLY_FIELDS = {"id", "sync_status", "created_at"}


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


def merge_budget(local: Budget, remote: Budget) -> Budget:
    """
    Field-by-field merge, remote value preferred when it is not None.

    The local sync status is kept. A pending local budget edited after the
    remote copy was written is returned unchanged.
    """
    if local.is_pending and local.updated_at > remote.updated_at:
        return local

    changes = {}
    for field in Budget.model_fields:
        if field in _LOCAL_ONLY_FIELDS:
            continue
        remote_value = getattr(remote, field)
        if remote_value is not None and remote_value != getattr(local, field):
            changes[field] = remote_value
    if not changes:
        return local
    return Budget.model_validate({**local.model_dump(), **changes})


class SyncReconciler:
    """Runs reconciliation passes between the local and remote stores."""

    def __init__(
        self,
        gateway: RemoteGateway,
        connectivity: ConnectivityChecker,
        categories: CategoryRepository,
        transactions: TransactionRepository,
        budgets: BudgetRepository,
        user_settings: UserSettingsRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._connectivity = connectivity
        self._categories = categories
        self._transactions = transactions
        self._budgets = budgets
        self._user_settings = user_settings
        self._audit = audit_logger or AuditLogger()
        self._state = SyncState.IDLE
        self.last_report: Optional[SyncReport] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SyncState.RUNNING

    # =========================================================================
    # PULL
    # =========================================================================

    @staticmethod
    def _parse(
        model: Type[Any],
        table: RemoteTable,
        records: list[RemoteRecord],
    ) -> list[Any]:
        """Validate remote records, skipping the ones that do not parse."""
        parsed = []
        for record in records:
            try:
                if issubclass(model, SyncedRecord):
                    parsed.append(model.from_remote(record))
                else:
                    parsed.append(model.model_validate(record))
            except ModelValidationError as e:
                logger.warning(
                    "remote_record_skipped",
                    table=table.value,
                    record_id=record.get("id"),
                    error=str(e),
                )
        return parsed

    async def _pull(self, report: SyncReport) -> None:
        remote = await self._gateway.select_all(RemoteTable.CATEGORIES)
        report.pulled_categories, _ = await self._categories.apply_remote(
            self._parse(Category, RemoteTable.CATEGORIES, remote)
        )

        remote = await self._gateway.select_all(RemoteTable.TRANSACTIONS, order_by="createdAt")
        report.pulled_transactions, _ = await self._transactions.apply_remote(
            self._parse(Transaction, RemoteTable.TRANSACTIONS, remote)
        )

        remote = await self._gateway.select_all(RemoteTable.BUDGETS, order_by="createdAt")
        report.pulled_budgets, report.merged_budgets = await self._budgets.apply_remote(
            self._parse(Budget, RemoteTable.BUDGETS, remote),
            merge=merge_budget,
        )

    # =========================================================================
    # PUSH
    # =========================================================================

    async def _push_table(
        self,
        table: RemoteTable,
        repository: SyncedRepository,
    ) -> int:
        pending = await repository.list_pending()
        if not pending:
            return 0
        await self._gateway.upsert(
            table,
            [record.to_remote() for record in pending],
            on_conflict="id",
        )
        return await repository.mark_synced(pending)

    async def _push(self, report: SyncReport) -> None:
        report.pushed_transactions = await self._push_table(
            RemoteTable.TRANSACTIONS, self._transactions
        )
        report.pushed_budgets = await self._push_table(
            RemoteTable.BUDGETS, self._budgets
        )

    # =========================================================================
    # PASS
    # =========================================================================

    @staticmethod
    def _counts(report: SyncReport) -> dict[str, int]:
        return report.model_dump(
            include={
                "pulled_categories",
                "pulled_transactions",
                "pulled_budgets",
                "merged_budgets",
                "pushed_transactions",
                "pushed_budgets",
            }
        )

    async def _run_pass(self) -> SyncReport:
        correlation_id = create_correlation_id()
        report = SyncReport()
        await self._audit.log_sync_started(correlation_id)

        if not await self._connectivity.is_connected():
            report.offline = True
            report.finished_at = utc_now()
            logger.info("sync_skipped_offline")
            await self._audit.log_sync_skipped_offline(correlation_id)
            return report

        try:
            await self._pull(report)
            await self._push(report)
        except RemoteError as e:
            report.error = str(e)
            report.finished_at = utc_now()
            logger.error(
                "sync_failed",
                error=str(e),
                error_type=type(e).__name__,
                **self._counts(report),
            )
            await self._audit.log_sync_failed(str(e), correlation_id, self._counts(report))
            return report

        report.finished_at = utc_now()
        await self._user_settings.update(last_synced_at=report.finished_at)
        logger.info("sync_completed", **self._counts(report))
        await self._audit.log_sync_completed(correlation_id, self._counts(report))
        return report

    async def try_reconcile(self) -> Optional[SyncReport]:
        """
        Run one pass unless one is already running.

        Returns:
            The pass report, or None if a pass was already in progress

        Raises:
            StorageError: The local store failed (the guard is still released)
        """
        if self._state == SyncState.RUNNING:
            logger.debug("sync_already_running")
            return None

        self._state = SyncState.RUNNING
        try:
            report = await self._run_pass()
            self._state = SyncState.FAILED if report.error else SyncState.IDLE
            self.last_report = report
            return report
        finally:
            if self._state == SyncState.RUNNING:
                self._state = SyncState.FAILED

    async def reconcile(self) -> None:
        """Fire-and-forget form of `try_reconcile`."""
        await self.try_reconcile()


class SyncScheduler:
    """
    Debounces sync requests.

    Every request restarts the quiet period; one pass runs once requests
    stop arriving. A pass that has started is never cancelled by a new
    request. Requests landing while a pass runs collapse into the
    reconciler's guard.
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        debounce_seconds: Optional[float] = None,
    ):
        self._reconciler = reconciler
        self._debounce = (
            debounce_seconds
            if debounce_seconds is not None
            else get_settings().sync.debounce_seconds
        )
        self._timer: Optional[asyncio.Task] = None
        self._passes: set[asyncio.Task] = set()

    @property
    def running_passes(self) -> int:
        return len(self._passes)

    @property
    def pending(self) -> bool:
        """A pass is waiting out the quiet period."""
        return self._timer is not None and not self._timer.done()

    async def _run_pass(self) -> None:
        try:
            await self._reconciler.try_reconcile()
        except Exception as e:
            # Nobody awaits this task; keep the failure visible
            logger.error("scheduled_sync_failed", error=str(e), error_type=type(e).__name__)

    async def _wait_then_sync(self) -> None:
        await asyncio.sleep(self._debounce)
        task = asyncio.get_running_loop().create_task(self._run_pass())
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)

    def request_sync(self) -> None:
        """Schedule a pass after the quiet period. Needs a running event loop."""
        if self.pending:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_sync())

    async def on_connectivity_restored(self) -> None:
        self.request_sync()

    async def flush(self) -> None:
        """Wait for the scheduled pass and every running pass to finish."""
        if self._timer is not None:
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        if self._passes:
            await asyncio.gather(*self._passes)

    async def close(self) -> None:
        """Drop a scheduled pass and wait for running ones."""
        if self.pending:
            self._timer.cancel()
        await self.flush()
        self._timer = None
