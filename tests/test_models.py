"""
Tests for the Finance Tracker models

Test strategy:
1. Unit tests for individual components (models, periods, engines)
2. Integration tests for flows (in-memory store and gateway)
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_tracker.models.finance import (
    Budget,
    Category,
    CategoryType,
    PeriodType,
    RecurrenceFrequency,
    SyncStatus,
    Transaction,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

from tests.conftest import make_budget


class TestCategoryModel:
    """Tests for the Category model."""

    def test_category_creation(self):
        """Test Category model creation with defaults."""
        category = Category(name="Salud", type=CategoryType.EXPENSE)
        assert category.name == "Salud"
        assert category.is_subcategory is False
        assert category.parent_id is None
        assert category.id

    def test_category_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        category = Category(name="  Salud  ", type=CategoryType.EXPENSE)
        assert category.name == "Salud"

    def test_subcategory_requires_parent(self):
        """Test that a subcategory without parent is rejected."""
        with pytest.raises(ValueError):
            Category(name="Cine", type=CategoryType.EXPENSE, is_subcategory=True)

    def test_parent_pointer_marks_subcategory(self):
        """Test that setting a parent makes the category a subcategory."""
        category = Category(name="Cine", type=CategoryType.EXPENSE, parent_id="p1")
        assert category.is_subcategory is True

    def test_category_cannot_be_own_parent(self):
        """Test self-parenting is rejected."""
        with pytest.raises(ValueError):
            Category(id="c1", name="Cine", type=CategoryType.EXPENSE, parent_id="c1")


class TestBudgetModel:
    """Tests for the Budget model."""

    def test_budget_defaults(self):
        """Test a new budget is pending with nothing spent."""
        budget = make_budget()
        assert budget.spent == Decimal("0")
        assert budget.sync_status == SyncStatus.PENDING
        assert budget.recurring is False

    def test_budget_rejects_inverted_dates(self):
        """Test start date must be before end date."""
        with pytest.raises(ValueError):
            make_budget(start_date=date(2024, 1, 31), end_date=date(2024, 1, 1))

    def test_budget_rejects_equal_dates(self):
        """Test a zero-length range is rejected."""
        with pytest.raises(ValueError):
            make_budget(start_date=date(2024, 1, 1), end_date=date(2024, 1, 1))

    def test_budget_rejects_negative_limit(self):
        """Test that negative limits are rejected."""
        with pytest.raises(ValueError):
            make_budget(limit=Decimal("-1"))

    def test_natural_key(self):
        """Test the natural key tuple."""
        budget = make_budget(subcategory_id="sub")
        assert budget.natural_key == (
            "cat-food", "sub", PeriodType.MONTHLY, date(2024, 1, 1)
        )

    def test_covers_is_inclusive(self):
        """Test both range ends are covered."""
        budget = make_budget()
        assert budget.covers(date(2024, 1, 1))
        assert budget.covers(date(2024, 1, 31))
        assert not budget.covers(date(2024, 2, 1))

    def test_record_uses_camel_case(self):
        """Test the stored shape is camelCase."""
        record = make_budget(recurring=True, recurrence_frequency=RecurrenceFrequency.MONTHLY).to_record()
        assert record["categoryId"] == "cat-food"
        assert record["periodType"] == "monthly"
        assert record["recurrenceFrequency"] == "monthly"
        assert record["syncStatus"] == "pending"
        assert record["startDate"] == "2024-01-01"

    def test_remote_shape_excludes_sync_status(self):
        """Test sync status never leaves the device."""
        assert "syncStatus" not in make_budget().to_remote()

    def test_from_remote_is_synced(self):
        """Test records pulled from the remote store are marked synced."""
        record = make_budget().to_remote()
        record["syncStatus"] = "pending"
        budget = Budget.from_remote(record)
        assert budget.sync_status == SyncStatus.SYNCED

    def test_loads_from_snake_case_too(self):
        """Test population by field name."""
        budget = Budget.model_validate(make_budget().model_dump())
        assert budget.category_id == "cat-food"


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_sign_convention(self):
        """Test negative amounts are expenses, positive are income."""
        expense = Transaction(
            concept="Super", category_id="c", account_id="a",
            amount=Decimal("-50.25"), date=date(2024, 1, 5),
        )
        income = Transaction(
            concept="Salario", category_id="c", account_id="a",
            amount=Decimal("3000"), date=date(2024, 1, 5),
        )
        assert expense.is_expense and not expense.is_income
        assert income.is_income and not income.is_expense

    def test_amount_precision(self):
        """Test more than two decimal places are rejected."""
        with pytest.raises(ValueError):
            Transaction(
                concept="Super", category_id="c", account_id="a",
                amount=Decimal("1.234"), date=date(2024, 1, 5),
            )


class TestPeriodType:
    """Tests for period enums."""

    def test_half_month_types(self):
        """Test which period types are atomic."""
        assert PeriodType.HALF_MONTH_1.is_half_month
        assert PeriodType.HALF_MONTH_2.is_half_month
        assert not PeriodType.MONTHLY.is_half_month
        assert not PeriodType.QUARTERLY.is_half_month
        assert not PeriodType.YEARLY.is_half_month

    def test_recurrence_steps(self):
        """Test recurrence step sizes in months."""
        assert RecurrenceFrequency.MONTHLY.months == 1
        assert RecurrenceFrequency.QUARTERLY.months == 3
        assert RecurrenceFrequency.YEARLY.months == 12


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            description="Budget created",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            description="Test event",
            entity_id="b1",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "sync_completed"
        assert log_dict["entity_id"] == "b1"
        assert log_dict["description"] == "Test event"

    def test_builder_integrity_warning_is_warning(self):
        """Test integrity warnings carry warning severity."""
        event = AuditEventBuilder.data_integrity_warning("budget", "b1", "no frequency")
        assert event.event_type == AuditEventType.DATA_INTEGRITY_WARNING
        assert event.severity == AuditSeverity.WARNING
        assert event.details["problem"] == "no frequency"

    def test_builder_sync_failed(self):
        """Test sync failure events keep the error and counts."""
        correlation_id = uuid4()
        event = AuditEventBuilder.sync_failed(
            error_message="timeout",
            correlation_id=correlation_id,
            counts={"pushed_budgets": 0},
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.correlation_id == correlation_id
        assert event.error_message == "timeout"
        assert event.details == {"pushed_budgets": 0}
