"""Services package."""

from finance_tracker.services.connectivity import (
    ConnectivityChecker,
    ConnectivityMonitor,
    StaticConnectivityChecker,
    TcpConnectivityChecker,
)
from finance_tracker.services.remote import (
    GoogleSheetsRemoteGateway,
    InMemoryRemoteGateway,
    NetworkError,
    RemoteError,
    RemoteGateway,
    RemoteTable,
)
from finance_tracker.services.storage import (
    BudgetRepository,
    CategoryRepository,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    StorageError,
    TransactionRepository,
)

__all__ = [
    # Connectivity
    "ConnectivityChecker",
    "ConnectivityMonitor",
    "StaticConnectivityChecker",
    "TcpConnectivityChecker",
    # Remote store
    "GoogleSheetsRemoteGateway",
    "InMemoryRemoteGateway",
    "NetworkError",
    "RemoteError",
    "RemoteGateway",
    "RemoteTable",
    # Local store
    "BudgetRepository",
    "CategoryRepository",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NotFoundError",
    "StorageError",
    "TransactionRepository",
]
