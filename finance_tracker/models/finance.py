"""
Core Data Models for the Finance Tracker

These models define the schemas for everything persisted locally or mirrored
to the remote store:
1. Categories (two-level hierarchy: category -> subcategory)
2. Budgets (period based, optionally recurring)
3. Transactions (signed amounts: positive income, negative expense)
4. Accounts and user settings

DESIGN DECISION: Python attributes are snake_case, the wire format is
camelCase. Both the local JSON snapshots and remote records use the alias
names, so one `model_dump(mode="json", by_alias=True)` serves both.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel


Money = Annotated[Decimal, Field(decimal_places=2)]

# Alias so a model field can itself be named `date`
CalendarDate = date


def new_id() -> str:
    """Generate a record identifier."""
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CategoryType(str, Enum):
    """Whether a category groups money coming in or going out."""
    INCOME = "income"
    EXPENSE = "expense"


class PeriodType(str, Enum):
    """
    Budget period types.

    Half-month periods ("quincenas") are the atomic unit: longer periods
    are prorated into them.
    """
    HALF_MONTH_1 = "half_month_1"  # day 1 - 15
    HALF_MONTH_2 = "half_month_2"  # day 16 - end of month
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def is_half_month(self) -> bool:
        return self in (PeriodType.HALF_MONTH_1, PeriodType.HALF_MONTH_2)


class RecurrenceFrequency(str, Enum):
    """How often a recurring budget spawns its next period."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return {"monthly": 1, "quarterly": 3, "yearly": 12}[self.value]


class SyncStatus(str, Enum):
    """Whether a local record has been pushed to the remote store."""
    PENDING = "pending"
    SYNCED = "synced"


class AccountType(str, Enum):
    CASH = "cash"
    BANK = "bank"
    CARD = "card"
    OTHER = "other"


class AlertLevel(str, Enum):
    """Budget consumption state used for warnings."""
    OK = "ok"
    CAUTION = "caution"    # above the caution threshold
    DANGER = "danger"      # above the danger threshold


# =============================================================================
# BASE
# =============================================================================

class FinanceModel(BaseModel):
    """Shared configuration: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize for the local JSON snapshot."""
        return self.model_dump(mode="json", by_alias=True)


class SyncedRecord(FinanceModel):
    """A record mirrored to the remote store."""

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Record identifier, shared with the remote store"
    )
    sync_status: SyncStatus = Field(
        default=SyncStatus.PENDING,
        description="Pending until pushed to the remote store"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.sync_status == SyncStatus.PENDING

    def to_remote(self) -> dict[str, Any]:
        """Serialize for the remote store (sync status is local-only)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"sync_status"},
        )

    @classmethod
    def from_remote(cls, record: dict[str, Any]):
        """Build a local record from a remote one; it is synced by definition."""
        data = {key: value for key, value in record.items() if key != "syncStatus"}
        data["syncStatus"] = SyncStatus.SYNCED.value
        return cls.model_validate(data)


# =============================================================================
# CATEGORY
# =============================================================================

class Category(FinanceModel):
    """
    A category or subcategory.

    Categories form a forest of depth exactly 2. The parent-pointer
    invariants that need the rest of the tree (parent exists, parent is
    not itself a subcategory, same type) are enforced by the CategoryStore.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: str = Field(default="#9E9E9E", max_length=20)
    icon: str = Field(default="tag", max_length=50)
    is_subcategory: bool = False
    parent_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_parent(self) -> 'Category':
        """A subcategory needs a parent; a parent pointer makes a subcategory."""
        if self.is_subcategory and not self.parent_id:
            raise ValueError("Subcategory must reference a parent category")
        if self.parent_id:
            if self.parent_id == self.id:
                raise ValueError("Category cannot be its own parent")
            self.is_subcategory = True
        return self


class CategoryWithChildren(BaseModel):
    """A main category and its subcategories."""

    category: Category
    children: list[Category] = Field(default_factory=list)


# =============================================================================
# BUDGET
# =============================================================================

class Budget(SyncedRecord):
    """
    A spending limit for a category (optionally a subcategory) over a period.

    `spent` grows additively as expense transactions land in the period.
    Budgets are never deleted by the engines.
    """

    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    limit: Money = Field(..., ge=0)
    spent: Money = Field(default=Decimal("0"), ge=0)
    period_type: PeriodType
    start_date: date
    end_date: date
    notes: Optional[str] = Field(default=None, max_length=1000)

    # Recurrence
    recurring: bool = False
    recurrence_frequency: Optional[RecurrenceFrequency] = None
    recurrence_end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        """Validate the period boundaries."""
        if self.start_date >= self.end_date:
            raise ValueError("Budget start date must be before end date")
        return self

    @property
    def natural_key(self) -> tuple:
        """(category, subcategory, period type, start): identifies "the same budget"."""
        return (
            self.category_id,
            self.subcategory_id,
            self.period_type,
            self.start_date,
        )

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(SyncedRecord):
    """
    A money movement. Positive amount = income, negative = expense.

    `category_id` always denotes the top-level category, even when a
    subcategory is selected.
    """

    concept: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    amount: Money
    date: CalendarDate
    account_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def is_income(self) -> bool:
        return self.amount > 0


# =============================================================================
# ACCOUNTS AND SETTINGS
# =============================================================================

class Account(FinanceModel):
    """A place money lives (cash, bank account, card)."""

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.OTHER
    balance: Money = Decimal("0")
    currency: str = Field(default="DOP", min_length=3, max_length=3)
    color: str = Field(default="#9E9E9E", max_length=20)
    icon: str = Field(default="credit-card", max_length=50)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class UserSettings(FinanceModel):
    """Household preferences plus bookkeeping the engine needs between runs."""

    name: str = "Familia"
    email: Optional[str] = None
    primary_currency: str = Field(default="DOP", min_length=3, max_length=3)
    dark_mode: bool = False
    notifications: bool = True
    last_synced_at: Optional[datetime] = None
    schema_version: int = Field(
        default=0,
        ge=0,
        description="Highest local data migration applied"
    )


# =============================================================================
# DERIVED RESULTS (never persisted)
# =============================================================================

class SubcategoryAggregate(BaseModel):
    """Budget totals for one subcategory."""

    subcategory_id: str
    subcategory_name: Optional[str] = None
    total_limit: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    budget_count: int = Field(default=0, ge=0)
    percentage: float = 0.0


class CategoryAggregate(BaseModel):
    """
    Budget totals for a main category, rolled up from its subcategories.

    When the category has no budget of its own, the aggregate is a
    consolidated, non-editable view (is_consolidated=True) whose id carries
    the consolidated prefix so callers can tell it apart from a real budget.
    """

    id: str
    category_id: str
    category_name: Optional[str] = None
    direct_limit: Decimal = Decimal("0")
    direct_spent: Decimal = Decimal("0")
    total_limit: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    children: list[SubcategoryAggregate] = Field(default_factory=list)
    is_consolidated: bool = False
    percentage: float = Field(
        default=0.0,
        description="Unclamped spent/limit percentage, used for alerts"
    )
    display_percentage: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Percentage clamped to [0, 100] for progress bars"
    )
    alert_level: AlertLevel = AlertLevel.OK

    @property
    def remaining(self) -> Decimal:
        return self.total_limit - self.total_spent

    @property
    def is_over_threshold(self) -> bool:
        return self.alert_level == AlertLevel.DANGER


class BalanceSummary(BaseModel):
    """Income and expenses over a date range."""

    start_date: date
    end_date: date
    income: Decimal = Decimal("0")
    expenses: Decimal = Field(
        default=Decimal("0"),
        description="Absolute value of all expense amounts"
    )

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses


class SyncReport(BaseModel):
    """Outcome of one reconciliation pass."""

    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    offline: bool = False

    pulled_categories: int = 0
    pulled_transactions: int = 0
    pulled_budgets: int = 0
    merged_budgets: int = 0
    pushed_transactions: int = 0
    pushed_budgets: int = 0

    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.offline and self.error is None
