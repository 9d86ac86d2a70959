"""
Transaction Ledger

Records transactions and keeps budget spend in step with them.

An expense adds its absolute amount to the budgets it lands in: those of
its category whose range covers the transaction date. Within one period
type, a subcategory expense goes to the subcategory's budget when there is
one and to the category's general budget otherwise, so the category total
(general + subcategories) counts it exactly once.

Edits and deletions first take the old charge back off the budgets that
match the old version, then charge the new version. Spend never goes below
zero.

DESIGN DECISION: The transaction write and the budget write are two store
keys. When the budget write fails the transaction write is undone before
the StorageError propagates, so a retry starts from a clean state.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError as ModelValidationError

from finance_tracker.audit import AuditLogger
from finance_tracker.engine.periods import compute_period
from finance_tracker.models.finance import (
    BalanceSummary,
    Budget,
    PeriodType,
    SyncStatus,
    Transaction,
)
from finance_tracker.services.storage.interface import NotFoundError, StorageError
from finance_tracker.services.storage.repository import (
    BudgetRepository,
    TransactionRepository,
)
from finance_tracker.validation import FinanceValidator, ValidationError


logger = structlog.get_logger(__name__)

# Fields a caller may not change through update_transaction
PROTECTED_FIELDS = {"id", "created_at", "updated_at", "sync_status"}


def budgets_for_expense(transaction: Transaction, budgets: list[Budget]) -> list[Budget]:
    """Budgets an expense should be charged to (see module docstring)."""
    by_period: dict[PeriodType, list[Budget]] = {}
    for budget in budgets:
        if budget.category_id == transaction.category_id and budget.covers(transaction.date):
            by_period.setdefault(budget.period_type, []).append(budget)

    matched = []
    for candidates in by_period.values():
        specific = [
            b for b in candidates
            if transaction.subcategory_id is not None
            and b.subcategory_id == transaction.subcategory_id
        ]
        if specific:
            matched.extend(specific)
        else:
            matched.extend(b for b in candidates if b.subcategory_id is None)
    return matched


def spend_deltas(
    previous: Optional[Transaction],
    current: Optional[Transaction],
    budgets: list[Budget],
) -> dict[str, Decimal]:
    """Per-budget spend change for replacing `previous` with `current`."""
    deltas: dict[str, Decimal] = {}
    for transaction, sign in ((previous, -1), (current, 1)):
        if transaction is None or not transaction.is_expense:
            continue
        for budget in budgets_for_expense(transaction, budgets):
            deltas[budget.id] = deltas.get(budget.id, Decimal("0")) + sign * abs(transaction.amount)
    return {budget_id: delta for budget_id, delta in deltas.items() if delta != 0}


class TransactionLedger:
    def __init__(
        self,
        transactions: TransactionRepository,
        budgets: BudgetRepository,
        validator: FinanceValidator,
        audit_logger: Optional[AuditLogger] = None,
        on_pending: Optional[Callable[[], None]] = None,
    ):
        self._transactions = transactions
        self._budgets = budgets
        self._validator = validator
        self._audit = audit_logger or AuditLogger()
        self._on_pending = on_pending

    async def _validate(self, transaction: Transaction) -> None:
        for warning in await self._validator.validate_transaction(transaction):
            logger.warning(
                "transaction_warning",
                transaction_id=transaction.id,
                field=warning.field,
                message=warning.message,
            )

    async def _charge(
        self,
        deltas: dict[str, Decimal],
        undo: Callable[[], Awaitable[Any]],
        transaction_id: str,
    ) -> list[Budget]:
        """Apply spend changes; on a store failure undo the transaction write."""
        try:
            return await self._budgets.adjust_spent(deltas)
        except StorageError:
            try:
                await undo()
            except StorageError as e:
                logger.error(
                    "transaction_rollback_failed",
                    transaction_id=transaction_id,
                    error=str(e),
                )
            raise

    def _request_sync(self) -> None:
        if self._on_pending is not None:
            self._on_pending()

    async def _get(self, transaction_id: str) -> Transaction:
        transaction = await self._transactions.get(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Validate and store a new (pending) transaction, then charge
        expenses to their budgets and ask for a sync.

        Raises:
            ValidationError: Bad amount or category references
            StorageError: The local store could not be written
        """
        await self._validate(transaction)

        stored = await self._transactions.upsert(transaction)
        deltas = spend_deltas(None, stored, await self._budgets.list())
        updated = await self._charge(
            deltas, lambda: self._transactions.remove(stored.id), stored.id
        )

        logger.info(
            "transaction_recorded",
            transaction_id=stored.id,
            amount=str(stored.amount),
            budgets_updated=len(updated),
        )
        await self._audit.log_transaction_recorded(
            transaction_id=stored.id,
            amount=str(stored.amount),
            budgets_updated=len(updated),
        )

        self._request_sync()
        return stored

    async def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """
        Change fields of a stored transaction and move its budget charge.

        The edited transaction is pending again, so the new version is
        pushed on the next sync.

        Raises:
            NotFoundError: No transaction with this id
            ValidationError: The edited transaction is invalid
            StorageError: The local store could not be written
        """
        previous = await self._get(transaction_id)
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValidationError(f"Cannot change {', '.join(sorted(protected))}")

        try:
            candidate = Transaction.model_validate({
                **previous.model_dump(),
                **changes,
                "sync_status": SyncStatus.PENDING,
            })
        except ModelValidationError as e:
            raise ValidationError(f"Invalid transaction: {e}")
        await self._validate(candidate)

        stored = await self._transactions.upsert(candidate)
        deltas = spend_deltas(previous, stored, await self._budgets.list())
        updated = await self._charge(
            deltas,
            lambda: self._transactions.upsert(previous, touch=False),
            transaction_id,
        )

        logger.info(
            "transaction_updated",
            transaction_id=transaction_id,
            changed_fields=sorted(changes),
            budgets_updated=len(updated),
        )
        await self._audit.log_transaction_changed(
            transaction_id=transaction_id,
            deleted=False,
            budgets_updated=len(updated),
            changed_fields=sorted(changes),
        )
        self._request_sync()
        return stored

    async def delete_transaction(self, transaction_id: str) -> Transaction:
        """
        Delete a transaction that has not been synced yet and take its
        charge back off the budgets.

        Synced transactions cannot be deleted: the remote store has no
        delete, so the next pull would bring them back.

        Raises:
            NotFoundError: No transaction with this id
            ValidationError: The transaction was already synced
            StorageError: The local store could not be written
        """
        previous = await self._get(transaction_id)
        if not previous.is_pending:
            raise ValidationError(f"Transaction {transaction_id} is already synced")

        await self._transactions.remove(transaction_id)
        deltas = spend_deltas(previous, None, await self._budgets.list())
        updated = await self._charge(
            deltas,
            lambda: self._transactions.upsert(previous, touch=False),
            transaction_id,
        )

        logger.info(
            "transaction_deleted",
            transaction_id=transaction_id,
            budgets_updated=len(updated),
        )
        await self._audit.log_transaction_changed(
            transaction_id=transaction_id,
            deleted=True,
            budgets_updated=len(updated),
        )
        if updated:
            self._request_sync()
        return previous

    async def balance_between(self, start: date, end: date) -> BalanceSummary:
        summary = BalanceSummary(start_date=start, end_date=end)
        for tx in await self._transactions.list_between(start, end):
            if tx.is_income:
                summary.income += tx.amount
            elif tx.is_expense:
                summary.expenses += abs(tx.amount)
        return summary

    async def current_month_balance(self, today: Optional[date] = None) -> BalanceSummary:
        month = compute_period(PeriodType.MONTHLY, today or date.today())
        return await self.balance_between(month.start, month.end)

    async def totals_by_category(
        self,
        start: date,
        end: date,
        expenses_only: bool = True,
    ) -> dict[str, Decimal]:
        """Absolute amounts per main category id, largest first."""
        totals: dict[str, Decimal] = {}
        for tx in await self._transactions.list_between(start, end):
            if expenses_only and not tx.is_expense:
                continue
            totals[tx.category_id] = totals.get(tx.category_id, Decimal("0")) + abs(tx.amount)
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))
