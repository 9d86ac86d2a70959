"""
Proration Engine

Splits a budget amount defined over a monthly, quarterly or yearly period
into equal shares across the half-month sub-periods ("quincenas") that
compose it, creating or updating one half-month budget per sub-period.

    monthly    -> 2 half-months,  amount / 2 each
    quarterly  -> 6 half-months,  amount / 6 each
    yearly     -> 24 half-months, amount / 24 each

DESIGN DECISIONS:
- Shares are rounded down to the cent and the final sub-period absorbs the
  remainder, so the shares always sum to the amount exactly.
- The natural key (category, subcategory, half-month type, start date)
  identifies a sub-period budget. Re-prorating updates `limit` and `notes`
  of the existing budgets instead of creating duplicates.
- All sub-period budgets are written in one snapshot write. A storage
  failure propagates to the caller; nothing of that run is persisted, but
  budgets created by earlier runs are never rolled back.
"""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Optional

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.engine.categories import CategoryStore
from finance_tracker.engine.periods import split_into_half_months
from finance_tracker.models.finance import Budget, Category, PeriodType
from finance_tracker.services.storage.repository import BudgetRepository
from finance_tracker.validation import require_positive_amount


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def split_amount(total: Decimal, parts: int) -> list[Decimal]:
    """
    Split `total` into `parts` cent-precise shares summing to `total`.

    >>> split_amount(Decimal("100"), 3)
    [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")
    total = Decimal(total).quantize(CENT)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [total - share * (parts - 1)]


def prorated_notes(period_type: PeriodType, notes: Optional[str]) -> str:
    text = f"Prorated from {period_type.value} budget."
    if notes:
        text = f"{text} {notes}"
    return text


class ProrationEngine:
    """Creates and maintains the half-month budgets of longer periods."""

    def __init__(
        self,
        budgets: BudgetRepository,
        categories: CategoryStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._categories = categories
        self._audit = audit_logger or AuditLogger()

    async def prorate(
        self,
        category_name: str,
        total_amount: Decimal,
        period_type: PeriodType,
        notes: Optional[str] = None,
        reference_date: Optional[date] = None,
        subcategory_id: Optional[str] = None,
    ) -> list[Budget]:
        """
        Prorate `total_amount` over the half-months of the period of
        `period_type` containing `reference_date` (default: today).

        Returns:
            The half-month budgets of the period, created or updated.
            Empty for half-month period types.

        Raises:
            ValidationError: Non-positive amount or unknown category
            StorageError: The budget snapshot could not be written
        """
        amount = require_positive_amount(total_amount, "total_amount")
        period_type = PeriodType(period_type)
        if period_type.is_half_month:
            return []

        category = await self._categories.resolve_name(category_name)
        return await self.prorate_category(
            category,
            amount,
            period_type,
            notes=notes,
            reference_date=reference_date,
            subcategory_id=subcategory_id,
        )

    async def prorate_category(
        self,
        category: Category,
        total_amount: Decimal,
        period_type: PeriodType,
        notes: Optional[str] = None,
        reference_date: Optional[date] = None,
        subcategory_id: Optional[str] = None,
    ) -> list[Budget]:
        """Same as `prorate`, for an already resolved category."""
        amount = require_positive_amount(total_amount, "total_amount")
        period_type = PeriodType(period_type)
        if period_type.is_half_month:
            return []

        halves = split_into_half_months(period_type, reference_date or date.today())
        shares = split_amount(amount, len(halves))
        text = prorated_notes(period_type, notes)

        candidates = [
            Budget(
                category_id=category.id,
                subcategory_id=subcategory_id,
                limit=share,
                period_type=half.period_type,
                start_date=half.range.start,
                end_date=half.range.end,
                notes=text,
            )
            for half, share in zip(halves, shares)
        ]

        result = await self._budgets.merge_by_natural_key(
            candidates, update_fields=("limit", "notes")
        )

        logger.info(
            "budget_prorated",
            category=category.name,
            period_type=period_type.value,
            total_amount=str(amount),
            created=len(result.created),
            updated=len(result.updated),
        )
        await self._audit.log_budget_prorated(
            category_id=category.id,
            period_type=period_type.value,
            total_amount=str(amount),
            created=len(result.created),
            updated=len(result.updated),
        )

        return sorted(result.budgets, key=lambda b: b.start_date)
