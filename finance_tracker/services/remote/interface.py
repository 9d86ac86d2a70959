"""
Abstract Remote Gateway Interface

DESIGN DECISION: The remote store is reached through a table-oriented
gateway (select all, upsert by id, insert). The sync reconciler only knows
this interface, so the backend (Google Sheets today, a hosted database
tomorrow) can be swapped without touching reconciliation logic.

Records crossing this boundary are plain dicts in wire format (camelCase).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional


RemoteRecord = dict[str, Any]


class RemoteTable(str, Enum):
    """Tables mirrored remotely."""
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    CATEGORIES = "categories"


class RemoteGateway(ABC):
    """
    Abstract interface for the remote store.

    Any backend must implement these methods.
    """

    @abstractmethod
    async def select_all(
        self,
        table: RemoteTable,
        order_by: Optional[str] = None,
    ) -> list[RemoteRecord]:
        """
        Fetch every record of a table.

        Args:
            table: Table to read
            order_by: Optional field to sort ascending by

        Raises:
            NetworkError: If the backend cannot be reached
            RemoteError: If the backend rejects the request
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
        on_conflict: str = "id",
    ) -> None:
        """
        Insert records, replacing existing ones that share the conflict key.

        Idempotent: repeating the call leaves one copy of each record.

        Raises:
            NetworkError, RemoteError
        """
        pass

    @abstractmethod
    async def insert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
    ) -> None:
        """
        Append records.

        Raises:
            RemoteError: If a record with the same id already exists
            NetworkError
        """
        pass


class RemoteError(Exception):
    """The remote store failed or rejected a request."""
    pass


class NetworkError(RemoteError):
    """The remote store could not be reached."""
    pass
