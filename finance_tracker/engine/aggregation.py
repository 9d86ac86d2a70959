"""
Category Aggregator

Rolls budgets and spend up the two-level category tree:

    category total = direct (general) budgets + sum of subcategory groups

When a category has subcategory budgets but no budget of its own, the
result is a consolidated aggregate: a derived, read-only view whose id
carries the consolidated prefix so it can never be mistaken for (or saved
as) a real budget. Aggregates are computed on demand and never persisted.

A budget longer than a half-month and its prorated half-months hold the
same money, so a roll-up only ever looks at one period type. Without an
explicit period type the view is the half-month containing `within`
(default today), as the budgets screen shows it.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finance_tracker.config import BudgetSettings, get_settings
from finance_tracker.engine.categories import CategoryStore
from finance_tracker.engine.periods import half_month_type_for
from finance_tracker.models.finance import (
    AlertLevel,
    Budget,
    Category,
    CategoryAggregate,
    PeriodType,
    SubcategoryAggregate,
)
from finance_tracker.services.storage.repository import (
    BudgetRepository,
    TransactionRepository,
)


def spent_percentage(spent: Decimal, limit: Decimal) -> float:
    """spent / limit * 100, 0 when there is no limit."""
    if limit <= 0:
        return 0.0
    return float(spent / limit * 100)


def clamp_percentage(value: float) -> float:
    return max(0.0, min(100.0, value))


class CategoryAggregator:
    """Budget totals per category, including subcategory breakdowns."""

    def __init__(
        self,
        budgets: BudgetRepository,
        categories: CategoryStore,
        transactions: TransactionRepository,
        settings: Optional[BudgetSettings] = None,
    ):
        self._budgets = budgets
        self._categories = categories
        self._transactions = transactions
        self._settings = settings or get_settings().budget

    def alert_level(self, percentage: float) -> AlertLevel:
        """Alert state from the unclamped percentage."""
        if percentage > self._settings.danger_threshold:
            return AlertLevel.DANGER
        if percentage > self._settings.caution_threshold:
            return AlertLevel.CAUTION
        return AlertLevel.OK

    def consolidated_id(self, category_id: str) -> str:
        return f"{self._settings.consolidated_id_prefix}{category_id}"

    def is_consolidated_id(self, budget_id: str) -> bool:
        return budget_id.startswith(self._settings.consolidated_id_prefix)

    async def _selected_budgets(
        self,
        period_type: Optional[PeriodType],
        within: Optional[date],
    ) -> list[Budget]:
        if period_type is None:
            within = within or date.today()
            period_type = half_month_type_for(within)
        budgets = [
            b for b in await self._budgets.list()
            if b.period_type == PeriodType(period_type)
        ]
        if within is not None:
            budgets = [b for b in budgets if b.covers(within)]
        return budgets

    @staticmethod
    def _owner_of(budget: Budget, categories: dict[str, Category]) -> str:
        """Main category a budget rolls up into."""
        if budget.subcategory_id:
            subcategory = categories.get(budget.subcategory_id)
            if subcategory is not None and subcategory.parent_id:
                return subcategory.parent_id
        return budget.category_id

    def _build(
        self,
        category_id: str,
        budgets: list[Budget],
        categories: dict[str, Category],
    ) -> CategoryAggregate:
        direct = [b for b in budgets if b.subcategory_id is None]

        groups: dict[str, list[Budget]] = {}
        for budget in budgets:
            if budget.subcategory_id is not None:
                groups.setdefault(budget.subcategory_id, []).append(budget)

        children = []
        for subcategory_id, members in groups.items():
            limit = sum((b.limit for b in members), Decimal("0"))
            spent = sum((b.spent for b in members), Decimal("0"))
            subcategory = categories.get(subcategory_id)
            children.append(SubcategoryAggregate(
                subcategory_id=subcategory_id,
                subcategory_name=subcategory.name if subcategory else None,
                total_limit=limit,
                total_spent=spent,
                budget_count=len(members),
                percentage=spent_percentage(spent, limit),
            ))
        children.sort(key=lambda c: c.total_limit, reverse=True)

        direct_limit = sum((b.limit for b in direct), Decimal("0"))
        direct_spent = sum((b.spent for b in direct), Decimal("0"))
        total_limit = direct_limit + sum((c.total_limit for c in children), Decimal("0"))
        total_spent = direct_spent + sum((c.total_spent for c in children), Decimal("0"))

        is_consolidated = not direct and bool(children)
        if is_consolidated:
            aggregate_id = self.consolidated_id(category_id)
        elif len(direct) == 1:
            aggregate_id = direct[0].id
        else:
            aggregate_id = category_id

        percentage = spent_percentage(total_spent, total_limit)
        category = categories.get(category_id)
        return CategoryAggregate(
            id=aggregate_id,
            category_id=category_id,
            category_name=category.name if category else None,
            direct_limit=direct_limit,
            direct_spent=direct_spent,
            total_limit=total_limit,
            total_spent=total_spent,
            children=children,
            is_consolidated=is_consolidated,
            percentage=percentage,
            display_percentage=clamp_percentage(percentage),
            alert_level=self.alert_level(percentage),
        )

    async def aggregate(
        self,
        category_id: str,
        period_type: Optional[PeriodType] = None,
        within: Optional[date] = None,
    ) -> CategoryAggregate:
        """
        Totals for one main category.

        Args:
            category_id: Main category to aggregate
            period_type: Only budgets of this period type (default: the
                         half-month type of `within`)
            within: Only budgets whose range covers this day (default:
                    today, when no period type is given)
        """
        categories = {c.id: c for c in await self._categories.all()}
        budgets = [
            b for b in await self._selected_budgets(period_type, within)
            if self._owner_of(b, categories) == category_id
        ]
        return self._build(category_id, budgets, categories)

    async def aggregate_all(
        self,
        period_type: Optional[PeriodType] = None,
        within: Optional[date] = None,
    ) -> list[CategoryAggregate]:
        """
        Aggregates of every main category with budgets, largest limit first.
        Filters default as in `aggregate`.
        """
        categories = {c.id: c for c in await self._categories.all()}
        by_owner: dict[str, list[Budget]] = {}
        for budget in await self._selected_budgets(period_type, within):
            by_owner.setdefault(self._owner_of(budget, categories), []).append(budget)

        aggregates = [
            self._build(category_id, budgets, categories)
            for category_id, budgets in by_owner.items()
        ]
        aggregates.sort(key=lambda a: a.total_limit, reverse=True)
        return aggregates

    async def subcategory_spending(
        self,
        category_id: str,
        start: date,
        end: date,
    ) -> dict[str, Decimal]:
        """
        Expense totals per subcategory of `category_id` between start and
        end, from transactions. Shows where a parent-only budget went.
        """
        totals: dict[str, Decimal] = {}
        for tx in await self._transactions.list_between(start, end):
            if tx.category_id != category_id or not tx.subcategory_id:
                continue
            if not tx.is_expense:
                continue
            totals[tx.subcategory_id] = totals.get(tx.subcategory_id, Decimal("0")) + abs(tx.amount)
        return totals
