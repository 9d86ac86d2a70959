"""
Abstract Local Store Interface

DESIGN DECISION: The local persistence primitive is a flat key-value store
holding one JSON array snapshot per logical key. We define an abstract
interface for it so that:
1. Tests run against an in-memory store
2. The desktop build writes JSON files, and a real embedded database can
   replace it later
3. Business logic only ever talks to repositories, never to raw keys

The interface is intentionally tiny: get and set of whole snapshots.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class StoreKey(str, Enum):
    """Logical keys of the local store."""
    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"
    BUDGETS = "budgets"
    ACCOUNTS = "accounts"
    USER_SETTINGS = "user_settings"


class KeyValueStore(ABC):
    """
    Abstract interface for the local key-value store.

    Values are JSON strings. Any implementation (memory, files, SQLite)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the snapshot stored under a key.

        Returns:
            The JSON string, or None if the key was never written

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Replace the snapshot stored under a key.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""
        pass


class StorageError(Exception):
    """Base exception for local store operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass
