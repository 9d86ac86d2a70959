"""Tests for the proration engine."""

import pytest
from datetime import date
from decimal import Decimal

from finance_tracker.engine.proration import prorated_notes, split_amount
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import PeriodType, SyncStatus
from finance_tracker.services.storage import BudgetRepository, StorageError
from finance_tracker.validation import ValidationError


class TestSplitAmount:
    """Tests for cent-precise splitting."""

    def test_even_split(self):
        assert split_amount(Decimal("1000"), 2) == [Decimal("500.00"), Decimal("500.00")]

    def test_remainder_goes_to_last_share(self):
        shares = split_amount(Decimal("100"), 6)
        assert shares[:5] == [Decimal("16.66")] * 5
        assert shares[-1] == Decimal("16.70")
        assert sum(shares) == Decimal("100")

    def test_shares_always_sum_to_total(self):
        for total in ("0.01", "99.99", "1234.56", "2400"):
            assert sum(split_amount(Decimal(total), 24)) == Decimal(total)

    def test_rejects_zero_parts(self):
        with pytest.raises(ValueError):
            split_amount(Decimal("10"), 0)

    def test_notes(self):
        assert prorated_notes(PeriodType.MONTHLY, None) == "Prorated from monthly budget."
        assert prorated_notes(PeriodType.YEARLY, "Comida") == "Prorated from yearly budget. Comida"


class TestProrate:
    """Tests for ProrationEngine.prorate."""

    async def test_monthly_budget_splits_in_two(self, proration, food):
        """Test a monthly 1000 on a 30-day month becomes two budgets of 500."""
        budgets = await proration.prorate(
            "Alimentación", Decimal("1000"), PeriodType.MONTHLY,
            reference_date=date(2024, 4, 10),
        )

        assert [b.period_type for b in budgets] == [
            PeriodType.HALF_MONTH_1, PeriodType.HALF_MONTH_2
        ]
        assert [b.limit for b in budgets] == [Decimal("500"), Decimal("500")]
        assert (budgets[0].start_date, budgets[0].end_date) == (date(2024, 4, 1), date(2024, 4, 15))
        assert (budgets[1].start_date, budgets[1].end_date) == (date(2024, 4, 16), date(2024, 4, 30))
        for budget in budgets:
            assert budget.category_id == food.id
            assert budget.spent == Decimal("0")
            assert budget.sync_status == SyncStatus.PENDING

    async def test_yearly_budget_splits_in_twenty_four(self, proration, budget_repo, food):
        """Test a yearly 2400 becomes 24 half-months of 100, two per month."""
        budgets = await proration.prorate(
            "Alimentación", Decimal("2400"), PeriodType.YEARLY,
            reference_date=date(2024, 6, 1),
        )

        assert len(budgets) == 24
        assert all(b.limit == Decimal("100") for b in budgets)
        months = [b.start_date.month for b in budgets]
        assert all(months.count(m) == 2 for m in range(1, 13))
        assert len(await budget_repo.list()) == 24

    async def test_quarterly_conserves_amount(self, proration, food):
        budgets = await proration.prorate(
            "Alimentación", Decimal("100"), PeriodType.QUARTERLY,
            reference_date=date(2024, 2, 1),
        )
        assert len(budgets) == 6
        assert sum(b.limit for b in budgets) == Decimal("100")
        assert budgets[0].start_date == date(2024, 1, 1)
        assert budgets[-1].end_date == date(2024, 3, 31)

    async def test_name_lookup_is_case_insensitive(self, proration, food):
        budgets = await proration.prorate(
            "alimentación", Decimal("200"), PeriodType.MONTHLY,
            reference_date=date(2024, 1, 1),
        )
        assert len(budgets) == 2

    async def test_reprorating_updates_in_place(self, proration, budget_repo, food):
        """Test a second run updates limit and notes without duplicating."""
        first = await proration.prorate(
            "Alimentación", Decimal("1000"), PeriodType.MONTHLY,
            reference_date=date(2024, 4, 1),
        )
        second = await proration.prorate(
            "Alimentación", Decimal("600"), PeriodType.MONTHLY,
            notes="Ajuste", reference_date=date(2024, 4, 20),
        )

        assert [b.id for b in second] == [b.id for b in first]
        assert [b.limit for b in second] == [Decimal("300"), Decimal("300")]
        assert all(b.notes == "Prorated from monthly budget. Ajuste" for b in second)
        assert len(await budget_repo.list()) == 2

    async def test_same_amount_twice_is_idempotent(self, proration, budget_repo, food):
        await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                reference_date=date(2024, 4, 1))
        await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                reference_date=date(2024, 4, 1))
        assert len(await budget_repo.list()) == 2

    async def test_subcategory_budgets_are_separate(self, proration, budget_repo, food, snacks):
        """Test subcategory proration does not touch the general budgets."""
        await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                reference_date=date(2024, 4, 1))
        await proration.prorate("Alimentación", Decimal("200"), PeriodType.MONTHLY,
                                reference_date=date(2024, 4, 1), subcategory_id=snacks.id)

        budgets = await budget_repo.list()
        assert len(budgets) == 4
        assert sorted(b.limit for b in budgets if b.subcategory_id == snacks.id) == [
            Decimal("100"), Decimal("100")
        ]

    async def test_half_month_type_is_noop(self, proration, budget_repo, food):
        """Test half-month periods are atomic and create nothing."""
        budgets = await proration.prorate(
            "Alimentación", Decimal("500"), PeriodType.HALF_MONTH_1,
            reference_date=date(2024, 4, 1),
        )
        assert budgets == []
        assert await budget_repo.list() == []

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    async def test_rejects_non_positive_amount(self, proration, budget_repo, food, amount):
        with pytest.raises(ValidationError):
            await proration.prorate("Alimentación", amount, PeriodType.MONTHLY)
        assert await budget_repo.list() == []

    async def test_rejects_unknown_category(self, proration, budget_repo, food):
        with pytest.raises(ValidationError):
            await proration.prorate("Viajes", Decimal("100"), PeriodType.MONTHLY)
        assert await budget_repo.list() == []

    async def test_proration_is_audited(self, proration, audit_logger, food):
        await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                reference_date=date(2024, 4, 1))
        events = audit_logger.events_of(AuditEventType.BUDGET_PRORATED)
        assert len(events) == 1
        assert events[0].entity_id == food.id

    async def test_failed_write_then_retry_persists(self, proration, budget_repo, store, food):
        """Test a store failure aborts the run and a retry writes both halves."""
        store.fail_writes("budgets")
        with pytest.raises(StorageError):
            await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                    reference_date=date(2024, 4, 10))
        assert await budget_repo.list() == []

        budgets = await proration.prorate("Alimentación", Decimal("1000"), PeriodType.MONTHLY,
                                          reference_date=date(2024, 4, 10))

        assert len(budgets) == 2
        assert len(await BudgetRepository(store).list()) == 2
