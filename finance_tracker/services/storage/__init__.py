"""
Storage Services Package

Provides the local key-value store interface, its implementations, and the
repositories the engines use instead of raw keys.
"""

from finance_tracker.services.storage.interface import (
    KeyValueStore,
    NotFoundError,
    StorageError,
    StoreKey,
)
from finance_tracker.services.storage.local import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from finance_tracker.services.storage.repository import (
    AccountRepository,
    BudgetRepository,
    CategoryRepository,
    JsonArrayRepository,
    SyncedRepository,
    TransactionRepository,
    UserSettingsRepository,
)

__all__ = [
    # Interfaces
    "KeyValueStore",
    "StoreKey",
    # Exceptions
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    # Repositories
    "AccountRepository",
    "BudgetRepository",
    "CategoryRepository",
    "JsonArrayRepository",
    "SyncedRepository",
    "TransactionRepository",
    "UserSettingsRepository",
]
