"""
Remote Store Package

The remote mirror of transactions, budgets and categories, reached through
an abstract table gateway.
"""

from finance_tracker.services.remote.interface import (
    NetworkError,
    RemoteError,
    RemoteGateway,
    RemoteRecord,
    RemoteTable,
)
from finance_tracker.services.remote.memory import InMemoryRemoteGateway
from finance_tracker.services.remote.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteGateway,
)

__all__ = [
    # Interface
    "RemoteGateway",
    "RemoteRecord",
    "RemoteTable",
    # Exceptions
    "NetworkError",
    "RemoteError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsRemoteGateway",
    "InMemoryRemoteGateway",
]
