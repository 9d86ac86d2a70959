"""
In-Memory Remote Gateway

Stands in for the remote store in tests and offline demos. It can be told
to fail, which is how reconciliation error paths are exercised.
"""

import copy
from typing import Optional

from finance_tracker.services.remote.interface import (
    RemoteError,
    RemoteGateway,
    RemoteRecord,
    RemoteTable,
)


class InMemoryRemoteGateway(RemoteGateway):
    """Dictionary-backed remote store keyed by table, then record id."""

    def __init__(self):
        self._tables: dict[RemoteTable, dict[str, RemoteRecord]] = {
            table: {} for table in RemoteTable
        }
        self.fail_with: Optional[RemoteError] = None
        self.calls: list[tuple[str, RemoteTable]] = []

    def _check(self, operation: str, table: RemoteTable) -> None:
        self.calls.append((operation, table))
        if self.fail_with is not None:
            raise self.fail_with

    def seed(self, table: RemoteTable, records: list[RemoteRecord]) -> None:
        """Place records remotely without going through the gateway calls."""
        for record in records:
            self._tables[table][str(record["id"])] = copy.deepcopy(record)

    def records(self, table: RemoteTable) -> list[RemoteRecord]:
        return [copy.deepcopy(r) for r in self._tables[table].values()]

    async def select_all(
        self,
        table: RemoteTable,
        order_by: Optional[str] = None,
    ) -> list[RemoteRecord]:
        self._check("select_all", table)
        rows = self.records(table)
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")))
        return rows

    async def upsert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
        on_conflict: str = "id",
    ) -> None:
        self._check("upsert", table)
        stored = self._tables[table]
        for record in records:
            key = str(record[on_conflict])
            match = next(
                (rid for rid, row in stored.items() if str(row.get(on_conflict)) == key),
                None,
            )
            if match is not None:
                del stored[match]
            stored[str(record["id"])] = copy.deepcopy(record)

    async def insert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
    ) -> None:
        self._check("insert", table)
        stored = self._tables[table]
        duplicates = [r["id"] for r in records if str(r["id"]) in stored]
        if duplicates:
            raise RemoteError(f"Duplicate ids in {table.value}: {duplicates}")
        for record in records:
            stored[str(record["id"])] = copy.deepcopy(record)

