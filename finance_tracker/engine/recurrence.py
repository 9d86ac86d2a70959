"""
Recurrence Generator

Once the period of a recurring budget has elapsed, creates the budget for
the next period (same limit, notes and recurrence settings, nothing spent)
and, for periods longer than a half-month, prorates it into its
half-months.

DESIGN DECISIONS:
- Catch-up: a budget left alone for several periods gets every missing
  generation in one call, walking the chain until the newest generation
  covers `as_of`. A second call right after therefore creates nothing.
- The natural key (category, subcategory, period type, start date) decides
  whether a generation already exists; older generations stay recurring
  and simply find their successor in place.
- No generation ever starts after `recurrence_end_date`.
- A recurring budget without a frequency is inconsistent data: it is
  reported as a DataIntegrityWarning and skipped, never fatal.
"""

import warnings
from datetime import date
from typing import Optional

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.engine.categories import CategoryStore
from finance_tracker.engine.periods import next_occurrence
from finance_tracker.engine.proration import ProrationEngine
from finance_tracker.models.finance import Budget
from finance_tracker.services.storage.repository import BudgetRepository


logger = structlog.get_logger(__name__)


class DataIntegrityWarning(UserWarning):
    """Stored data violates an invariant; the record was skipped."""


class RecurrenceGenerator:
    """Advances recurring budgets into the periods that have started."""

    def __init__(
        self,
        budgets: BudgetRepository,
        categories: CategoryStore,
        proration: ProrationEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._categories = categories
        self._proration = proration
        self._audit = audit_logger or AuditLogger()

    async def _report_integrity(self, budget: Budget, problem: str) -> None:
        warnings.warn(f"Budget {budget.id}: {problem}", DataIntegrityWarning, stacklevel=3)
        logger.warning("data_integrity_warning", budget_id=budget.id, problem=problem)
        await self._audit.log_integrity_warning("budget", budget.id, problem)

    def _next_generation(self, budget: Budget) -> Optional[Budget]:
        """The budget of the following period, or None past the recurrence end."""
        following = next_occurrence(
            budget.period_type,
            budget.start_date,
            budget.end_date,
            budget.recurrence_frequency,
        )
        if budget.recurrence_end_date and following.start > budget.recurrence_end_date:
            return None
        return Budget(
            category_id=budget.category_id,
            subcategory_id=budget.subcategory_id,
            limit=budget.limit,
            period_type=budget.period_type,
            start_date=following.start,
            end_date=following.end,
            notes=budget.notes,
            recurring=True,
            recurrence_frequency=budget.recurrence_frequency,
            recurrence_end_date=budget.recurrence_end_date,
        )

    async def _prorate_generation(self, generated: Budget) -> None:
        category = await self._categories.get(generated.category_id)
        if category is None:
            await self._report_integrity(
                generated,
                f"category {generated.category_id} does not exist, not prorated",
            )
            return
        await self._proration.prorate_category(
            category,
            generated.limit,
            generated.period_type,
            notes=generated.notes,
            reference_date=generated.start_date,
            subcategory_id=generated.subcategory_id,
        )

    async def advance_recurring_budgets(self, as_of: Optional[date] = None) -> int:
        """
        Create the budgets of every recurring period that has started.

        Args:
            as_of: Reference day (default: today)

        Returns:
            Number of recurring budgets created, not counting the
            half-month budgets prorated from them.
        """
        as_of = as_of or date.today()
        created = 0

        for budget in await self._budgets.list_recurring():
            if budget.recurrence_end_date and as_of > budget.recurrence_end_date:
                continue
            if budget.recurrence_frequency is None:
                await self._report_integrity(
                    budget, "recurring budget has no recurrence frequency"
                )
                continue

            current = budget
            while current.end_date < as_of:
                candidate = self._next_generation(current)
                if candidate is None:
                    break

                result = await self._budgets.merge_by_natural_key([candidate])
                if not result.created:
                    current = result.unchanged[0]
                    continue

                current = result.created[0]
                created += 1
                logger.info(
                    "recurring_budget_generated",
                    source_budget_id=budget.id,
                    budget_id=current.id,
                    start_date=current.start_date.isoformat(),
                    end_date=current.end_date.isoformat(),
                )
                await self._audit.log_recurrence_generated(
                    source_budget_id=budget.id,
                    new_budget_id=current.id,
                    start_date=current.start_date.isoformat(),
                    end_date=current.end_date.isoformat(),
                )
                if not current.period_type.is_half_month:
                    await self._prorate_generation(current)

        return created
