"""
Shared fixtures.

Everything runs against the in-memory store and gateway: no files, no
network.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.engine import (
    CategoryAggregator,
    CategoryStore,
    ProrationEngine,
    RecurrenceGenerator,
)
from finance_tracker.models.finance import Budget, CategoryType, PeriodType
from finance_tracker.orchestrator import FinanceTracker
from finance_tracker.services.connectivity import StaticConnectivityChecker
from finance_tracker.services.remote import InMemoryRemoteGateway
from finance_tracker.services.storage import (
    BudgetRepository,
    CategoryRepository,
    InMemoryKeyValueStore,
    StorageError,
    TransactionRepository,
    UserSettingsRepository,
)
from finance_tracker.sync import SyncReconciler


def make_budget(**overrides) -> Budget:
    """A valid monthly budget for January 2024, with overrides."""
    fields = {
        "category_id": "cat-food",
        "limit": Decimal("1000"),
        "period_type": PeriodType.MONTHLY,
        "start_date": date(2024, 1, 1),
        "end_date": date(2024, 1, 31),
    }
    fields.update(overrides)
    return Budget(**fields)


class FlakyKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose next writes to a key can be made to fail."""

    def __init__(self):
        super().__init__()
        self.failing_writes: dict[str, int] = {}

    def fail_writes(self, key: str, times: int = 1) -> None:
        self.failing_writes[key] = times

    async def set(self, key: str, value: str) -> None:
        if self.failing_writes.get(key, 0) > 0:
            self.failing_writes[key] -= 1
            raise StorageError(f"write to {key} failed")
        await super().set(key, value)


@pytest.fixture
def store():
    return FlakyKeyValueStore()


@pytest.fixture
def audit_logger():
    return AuditLogger(keep_events=True)


@pytest.fixture
def category_repo(store):
    return CategoryRepository(store)


@pytest.fixture
def budget_repo(store):
    return BudgetRepository(store)


@pytest.fixture
def transaction_repo(store):
    return TransactionRepository(store)


@pytest.fixture
def settings_repo(store):
    return UserSettingsRepository(store)


@pytest.fixture
def category_store(category_repo, audit_logger):
    return CategoryStore(category_repo, audit_logger)


@pytest.fixture
async def food(category_store):
    """Main expense category 'Alimentación'."""
    return await category_store.add_category("Alimentación", CategoryType.EXPENSE)


@pytest.fixture
async def snacks(category_store, food):
    """Subcategory 'Merienda' of 'Alimentación'."""
    return await category_store.add_subcategory(food.id, "Merienda")


@pytest.fixture
def proration(budget_repo, category_store, audit_logger):
    return ProrationEngine(budget_repo, category_store, audit_logger)


@pytest.fixture
def recurrence(budget_repo, category_store, proration, audit_logger):
    return RecurrenceGenerator(budget_repo, category_store, proration, audit_logger)


@pytest.fixture
def aggregator(budget_repo, category_store, transaction_repo):
    return CategoryAggregator(budget_repo, category_store, transaction_repo)


@pytest.fixture
def gateway():
    return InMemoryRemoteGateway()


@pytest.fixture
def connectivity():
    return StaticConnectivityChecker(online=True)


@pytest.fixture
def reconciler(
    gateway,
    connectivity,
    category_repo,
    transaction_repo,
    budget_repo,
    settings_repo,
    audit_logger,
):
    return SyncReconciler(
        gateway,
        connectivity,
        category_repo,
        transaction_repo,
        budget_repo,
        settings_repo,
        audit_logger,
    )


@pytest.fixture
async def tracker(store, gateway, connectivity, audit_logger):
    tracker = FinanceTracker(
        store,
        gateway,
        connectivity,
        audit_logger=audit_logger,
        debounce_seconds=0,
        poll_interval=0.01,
    )
    yield tracker
    await tracker.close()
