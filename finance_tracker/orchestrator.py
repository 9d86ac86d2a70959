"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Start-up (seed defaults → migrate → advance recurring budgets → sync)
2. Budget creation (validate → store → prorate → schedule sync)
3. Transaction entry (validate → store → charge budgets → schedule sync)
4. Edits (budget limit → re-prorate; transaction edit/delete → move spend)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is stored before it validates
- Proration finishes before the call returns
- Sync is always scheduled, never awaited, after a local mutation
- Every engine-initiated change is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError as ModelValidationError

from finance_tracker.audit import AuditLogger
from finance_tracker.config import BudgetSettings, get_settings, optional_google_sheets
from finance_tracker.engine import (
    CategoryAggregator,
    CategoryStore,
    LegacyCategoryMigration,
    ProrationEngine,
    RecurrenceGenerator,
    TransactionLedger,
    compute_period,
)
from finance_tracker.engine.defaults import default_accounts
from finance_tracker.models.finance import (
    Account,
    AccountType,
    BalanceSummary,
    Budget,
    Category,
    CategoryAggregate,
    CategoryType,
    PeriodType,
    RecurrenceFrequency,
    SyncReport,
    SyncStatus,
    Transaction,
    UserSettings,
)
from finance_tracker.services.connectivity import (
    ConnectivityChecker,
    ConnectivityMonitor,
    StaticConnectivityChecker,
    TcpConnectivityChecker,
)
from finance_tracker.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRemoteGateway,
    InMemoryRemoteGateway,
    RemoteGateway,
)
from finance_tracker.services.storage import (
    AccountRepository,
    BudgetRepository,
    CategoryRepository,
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    TransactionRepository,
    UserSettingsRepository,
)
from finance_tracker.sync import SyncReconciler, SyncScheduler
from finance_tracker.validation import FinanceValidator, ValidationError


logger = structlog.get_logger(__name__)

# Budget fields that can change without changing the natural key
EDITABLE_BUDGET_FIELDS = (
    "limit",
    "notes",
    "recurring",
    "recurrence_frequency",
    "recurrence_end_date",
)


class FinanceTracker:
    """
    Facade over the budget lifecycle engine.

    Owns one set of repositories over the injected store, so every engine
    shares the same cached snapshots and locks.
    """

    def __init__(
        self,
        store: KeyValueStore,
        gateway: RemoteGateway,
        connectivity: ConnectivityChecker,
        audit_logger: Optional[AuditLogger] = None,
        budget_settings: Optional[BudgetSettings] = None,
        debounce_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._budget_settings = budget_settings or get_settings().budget

        # Repositories
        self.categories_repo = CategoryRepository(store)
        self.transactions = TransactionRepository(store)
        self.budgets = BudgetRepository(store)
        self.accounts = AccountRepository(store)
        self.user_settings = UserSettingsRepository(store)

        # Engines
        self.categories = CategoryStore(self.categories_repo, self._audit)
        self.validator = FinanceValidator(self.categories_repo)
        self.proration = ProrationEngine(self.budgets, self.categories, self._audit)
        self.recurrence = RecurrenceGenerator(
            self.budgets, self.categories, self.proration, self._audit
        )
        self.aggregator = CategoryAggregator(
            self.budgets, self.categories, self.transactions, self._budget_settings
        )
        self.migration = LegacyCategoryMigration(
            store,
            self.categories_repo,
            self.user_settings,
            repositories=[self.transactions, self.budgets],
            audit_logger=self._audit,
        )

        # Sync
        self.reconciler = SyncReconciler(
            gateway,
            connectivity,
            self.categories_repo,
            self.transactions,
            self.budgets,
            self.user_settings,
            self._audit,
        )
        self.scheduler = SyncScheduler(self.reconciler, debounce_seconds)
        self.monitor = ConnectivityMonitor(
            connectivity,
            self.scheduler.on_connectivity_restored,
            poll_interval=poll_interval,
        )
        self.ledger = TransactionLedger(
            self.transactions,
            self.budgets,
            self.validator,
            self._audit,
            on_pending=self.scheduler.request_sync,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _seed_defaults(self) -> None:
        await self.categories.ensure_defaults()
        if not await self.accounts.list():
            await self.accounts.upsert_many(
                default_accounts(self._budget_settings.default_currency)
            )
        if not await self.user_settings.exists():
            await self.user_settings.save(
                UserSettings(primary_currency=self._budget_settings.default_currency)
            )

    async def start(
        self,
        as_of: Optional[date] = None,
        watch_connectivity: bool = False,
    ) -> Optional[SyncReport]:
        """
        Bring the local data up to date and run the first sync pass.

        Args:
            as_of: Day to advance recurring budgets to (default: today)
            watch_connectivity: Start polling for connectivity changes

        Returns:
            The report of the start-up sync pass
        """
        await self._seed_defaults()
        await self.migration.run()
        generated = await self.recurrence.advance_recurring_budgets(as_of)
        logger.info("finance_tracker_started", recurring_generated=generated)

        report = await self.reconciler.try_reconcile()
        if watch_connectivity:
            self.monitor.start()
        return report

    async def close(self) -> None:
        await self.monitor.stop()
        await self.scheduler.close()

    async def sync_now(self) -> Optional[SyncReport]:
        return await self.reconciler.try_reconcile()

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def add_category(
        self,
        name: str,
        category_type: CategoryType,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Category:
        return await self.categories.add_category(name, category_type, color, icon)

    async def add_subcategory(
        self,
        parent_id: str,
        name: str,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Category:
        return await self.categories.add_subcategory(parent_id, name, color, icon)

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(
        self,
        name: str,
        account_type: AccountType = AccountType.OTHER,
        balance: Decimal = Decimal("0"),
        currency: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Account:
        """
        Add an account. Names are unique, ignoring case.

        Raises:
            ValidationError: Invalid fields or a duplicate name
        """
        fields = {"color": color, "icon": icon}
        try:
            account = Account(
                name=name,
                type=account_type,
                balance=balance,
                currency=currency or self._budget_settings.default_currency,
                **{key: value for key, value in fields.items() if value is not None},
            )
        except ModelValidationError as e:
            raise ValidationError(f"Invalid account: {e}")

        taken = {a.name.casefold() for a in await self.accounts.list()}
        if account.name.casefold() in taken:
            raise ValidationError(f"Account already exists: {account.name}")

        stored = await self.accounts.upsert(account)
        await self._audit.log_account_created(stored.id, stored.name, stored.currency)
        return stored

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def create_budget(
        self,
        category_id: str,
        limit: Decimal,
        period_type: PeriodType,
        subcategory_id: Optional[str] = None,
        reference_date: Optional[date] = None,
        notes: Optional[str] = None,
        recurring: bool = False,
        recurrence_frequency: Optional[RecurrenceFrequency] = None,
        recurrence_end_date: Optional[date] = None,
    ) -> Budget:
        """
        Create (or update, if it exists) the budget of the period of
        `period_type` containing `reference_date`, then prorate it into
        half-months when the period is longer.

        Raises:
            ValidationError: Bad amount, dates, recurrence or categories
            StorageError: The local store could not be written
        """
        period = compute_period(period_type, reference_date or date.today())
        try:
            draft = Budget(
                category_id=category_id,
                subcategory_id=subcategory_id,
                limit=limit,
                period_type=period_type,
                start_date=period.start,
                end_date=period.end,
                notes=notes,
                recurring=recurring,
                recurrence_frequency=recurrence_frequency,
                recurrence_end_date=recurrence_end_date,
            )
        except ModelValidationError as e:
            raise ValidationError(f"Invalid budget: {e}")

        for warning in await self.validator.validate_budget(draft):
            logger.warning("budget_warning", field=warning.field, message=warning.message)

        result = await self.budgets.merge_by_natural_key(
            [draft],
            update_fields=EDITABLE_BUDGET_FIELDS,
        )
        budget = result.budgets[0]
        if result.created:
            await self._audit.log_budget_created(
                budget_id=budget.id,
                category_id=budget.category_id,
                period_type=budget.period_type.value,
                limit=str(budget.limit),
            )

        if not budget.period_type.is_half_month:
            category = await self.categories.get(budget.category_id)
            await self.proration.prorate_category(
                category,
                budget.limit,
                budget.period_type,
                notes=notes,
                reference_date=budget.start_date,
                subcategory_id=budget.subcategory_id,
            )

        self.scheduler.request_sync()
        return budget

    async def update_budget(self, budget_id: str, **changes) -> Budget:
        """
        Change the limit, notes or recurrence of a stored budget.

        A new limit on a budget longer than a half-month is prorated again,
        updating its half-month budgets in place. Period and categories are
        part of the natural key and cannot be changed here.

        Raises:
            NotFoundError: No budget with this id
            ValidationError: Consolidated id, unknown field, or invalid result
            StorageError: The local store could not be written
        """
        if self.aggregator.is_consolidated_id(budget_id):
            raise ValidationError("Consolidated budgets are derived and cannot be edited")
        unknown = set(changes) - set(EDITABLE_BUDGET_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot change {', '.join(sorted(unknown))}")

        previous = await self.budgets.get(budget_id)
        if previous is None:
            raise NotFoundError(f"Budget not found: {budget_id}")
        try:
            candidate = Budget.model_validate({**previous.model_dump(), **changes})
        except ModelValidationError as e:
            raise ValidationError(f"Invalid budget: {e}")
        for warning in await self.validator.validate_budget(candidate):
            logger.warning("budget_warning", field=warning.field, message=warning.message)

        changed = [f for f in EDITABLE_BUDGET_FIELDS if getattr(candidate, f) != getattr(previous, f)]
        if not changed:
            return previous

        budget = await self.budgets.update(
            budget_id,
            **{field: getattr(candidate, field) for field in changed},
            sync_status=SyncStatus.PENDING,
        )
        await self._audit.log_budget_updated(budget_id, changed)

        if "limit" in changed and not budget.period_type.is_half_month:
            category = await self.categories.get(budget.category_id)
            await self.proration.prorate_category(
                category,
                budget.limit,
                budget.period_type,
                notes=budget.notes,
                reference_date=budget.start_date,
                subcategory_id=budget.subcategory_id,
            )

        self.scheduler.request_sync()
        return budget

    async def prorate(
        self,
        category_name: str,
        total_amount: Decimal,
        period_type: PeriodType,
        notes: Optional[str] = None,
        reference_date: Optional[date] = None,
    ) -> list[Budget]:
        """Prorate by category name; see ProrationEngine.prorate."""
        budgets = await self.proration.prorate(
            category_name, total_amount, period_type, notes, reference_date
        )
        if budgets:
            self.scheduler.request_sync()
        return budgets

    async def budget_overview(
        self,
        period_type: Optional[PeriodType] = None,
        within: Optional[date] = None,
    ) -> list[CategoryAggregate]:
        return await self.aggregator.aggregate_all(period_type, within)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(
        self,
        concept: str,
        amount: Decimal,
        category_id: str,
        account_id: str,
        on: Optional[date] = None,
        subcategory_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        """
        Record a transaction. Negative amounts are expenses.

        Raises:
            ValidationError: Bad amount or category references
        """
        try:
            transaction = Transaction(
                concept=concept,
                amount=amount,
                category_id=category_id,
                subcategory_id=subcategory_id,
                account_id=account_id,
                date=on or date.today(),
                notes=notes,
            )
        except ModelValidationError as e:
            raise ValidationError(f"Invalid transaction: {e}")
        return await self.ledger.add_transaction(transaction)

    async def update_transaction(self, transaction_id: str, **changes) -> Transaction:
        return await self.ledger.update_transaction(transaction_id, **changes)

    async def delete_transaction(self, transaction_id: str) -> Transaction:
        return await self.ledger.delete_transaction(transaction_id)

    async def current_month_balance(self, today: Optional[date] = None) -> BalanceSummary:
        return await self.ledger.current_month_balance(today)


def create_app_components(
    use_remote: bool = True,
    data_dir: Optional[Path] = None,
) -> FinanceTracker:
    """
    Factory function to build a FinanceTracker from settings.

    Args:
        use_remote: Whether to mirror to Google Sheets. Falls back to
                    local-only mode when the remote is not configured.
        data_dir: Override for the local data directory

    Returns:
        A FinanceTracker ready for `start()`
    """
    store = JsonFileKeyValueStore(data_dir=data_dir)
    audit_logger = AuditLogger()

    sheets_settings = optional_google_sheets() if use_remote else None
    if sheets_settings is not None:
        gateway: RemoteGateway = GoogleSheetsRemoteGateway(GoogleSheetsClient(sheets_settings))
        connectivity: ConnectivityChecker = TcpConnectivityChecker()
    else:
        if use_remote:
            logger.warning("remote_not_configured", mode="local_only")
        # Local-only: every sync pass is a deferred, offline pass
        gateway = InMemoryRemoteGateway()
        connectivity = StaticConnectivityChecker(online=False)

    return FinanceTracker(store, gateway, connectivity, audit_logger=audit_logger)
