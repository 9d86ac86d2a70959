"""
Repositories over the Local Key-Value Store

Each repository owns one store key holding a JSON array snapshot and offers
record-level operations (list / get / upsert / remove) on top of it.

DESIGN DECISIONS:
- Snapshots are loaded once and cached. The repository is the only writer
  of its key, so the cache stays authoritative; `invalidate()` drops it when
  something else (a migration) rewrote the raw snapshot.
- asyncio suspends between a read and the following write, so every
  read-modify-write cycle runs under a per-repository asyncio.Lock.
- Malformed stored records are skipped on read and written back untouched,
  never silently dropped.
- Writes go through `_writing()`: if anything inside raises (a failed
  store write included) the cache and indexes are restored, so the cache
  never holds records the store did not receive.
- BudgetRepository keeps a dict index on the budget natural key so
  "does this budget already exist" is a lookup, not a scan.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Generic, Iterable, NamedTuple, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from finance_tracker.models.finance import (
    Account,
    Budget,
    Category,
    PeriodType,
    SyncStatus,
    SyncedRecord,
    Transaction,
    UserSettings,
    utc_now,
)
from finance_tracker.services.storage.interface import (
    KeyValueStore,
    NotFoundError,
    StorageError,
    StoreKey,
)


logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)
SyncedT = TypeVar("SyncedT", bound=SyncedRecord)

NaturalKey = tuple[str, Optional[str], PeriodType, date]


class NaturalKeyMerge(NamedTuple):
    """Outcome of BudgetRepository.merge_by_natural_key."""
    created: list[Budget]
    updated: list[Budget]
    unchanged: list[Budget]

    @property
    def budgets(self) -> list[Budget]:
        return [*self.created, *self.updated, *self.unchanged]


class JsonArrayRepository(Generic[RecordT]):
    """Record-level access to one JSON array snapshot."""

    key: StoreKey
    model: type

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._lock = asyncio.Lock()
        self._records: Optional[dict[str, RecordT]] = None
        self._malformed: list[Any] = []

    # ------------------------------------------------------------------
    # snapshot handling
    # ------------------------------------------------------------------

    async def _read_snapshot(self) -> list[Any]:
        raw = await self._store.get(self.key.value)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupted snapshot for {self.key.value}: {e}")
        if not isinstance(data, list):
            raise StorageError(f"Snapshot for {self.key.value} is not a list")
        return data

    async def _ensure_loaded(self) -> dict[str, RecordT]:
        if self._records is None:
            records: dict[str, RecordT] = {}
            malformed = []
            for item in await self._read_snapshot():
                try:
                    record = self.model.model_validate(item)
                except ValidationError as e:
                    logger.warning(
                        "malformed_record_skipped",
                        key=self.key.value,
                        error=str(e),
                    )
                    malformed.append(item)
                    continue
                records[record.id] = record
            self._records = records
            self._malformed = malformed
            self._on_loaded(records)
        return self._records

    async def _persist(self) -> None:
        records = self._records or {}
        payload = [record.to_record() for record in records.values()]
        payload.extend(self._malformed)
        await self._store.set(self.key.value, json.dumps(payload, ensure_ascii=False))

    def _capture_state(self) -> tuple:
        return dict(self._records or {}), list(self._malformed)

    def _restore_state(self, state: tuple) -> None:
        self._records, self._malformed = state

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[dict[str, RecordT]]:
        """
        Lock, load and yield the cached records for a read-modify-write.

        On any exception the cache is put back as it was before the block.
        """
        async with self._lock:
            stored = await self._ensure_loaded()
            state = self._capture_state()
            try:
                yield stored
            except BaseException:
                self._restore_state(state)
                raise

    def _on_loaded(self, records: dict[str, RecordT]) -> None:
        """Hook for subclasses maintaining indexes."""

    def _on_upserted(self, previous: Optional[RecordT], record: RecordT) -> None:
        """Hook for subclasses maintaining indexes."""

    def _on_removed(self, record: RecordT) -> None:
        """Hook for subclasses maintaining indexes."""

    def invalidate(self) -> None:
        """Forget the cached snapshot; the next access re-reads the store."""
        self._records = None
        self._malformed = []

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------

    async def get(self, record_id: str) -> Optional[RecordT]:
        records = await self._ensure_loaded()
        return records.get(record_id)

    async def exists(self, record_id: str) -> bool:
        return await self.get(record_id) is not None

    async def upsert(self, record: RecordT, touch: bool = True) -> RecordT:
        """
        Insert the record, or replace the stored one with the same id.

        Args:
            record: Record to store
            touch: Refresh `updated_at` (off when storing a remote copy as-is)
        """
        return (await self.upsert_many([record], touch=touch))[0]

    async def upsert_many(
        self,
        records: Iterable[RecordT],
        touch: bool = True,
    ) -> list[RecordT]:
        """Upsert several records with a single snapshot write."""
        async with self._writing() as stored:
            saved = []
            for record in records:
                if touch and hasattr(record, "updated_at"):
                    record = record.model_copy(update={"updated_at": utc_now()})
                previous = stored.get(record.id)
                stored[record.id] = record
                self._on_upserted(previous, record)
                saved.append(record)
            if saved:
                await self._persist()
            return saved

    async def update(self, record_id: str, **changes: Any) -> RecordT:
        """
        Apply field changes to a stored record.

        Raises:
            NotFoundError: If no record has this id
        """
        async with self._writing() as stored:
            previous = stored.get(record_id)
            if previous is None:
                raise NotFoundError(f"{self.key.value} record not found: {record_id}")
            changes.setdefault("updated_at", utc_now())
            record = self.model.model_validate(
                {**previous.model_dump(), **changes}
            )
            stored[record_id] = record
            self._on_upserted(previous, record)
            await self._persist()
            return record

    async def remove(self, record_id: str) -> bool:
        async with self._writing() as stored:
            record = stored.pop(record_id, None)
            if record is None:
                return False
            self._on_removed(record)
            await self._persist()
            return True

    async def replace_all(self, records: Iterable[RecordT]) -> None:
        """Overwrite the whole snapshot."""
        async with self._writing():
            self._records = {record.id: record for record in records}
            self._on_loaded(self._records)
            await self._persist()

    async def apply_remote(
        self,
        incoming: Iterable[RecordT],
        merge: Optional[Callable[[RecordT, RecordT], RecordT]] = None,
    ) -> tuple[int, int]:
        """
        Store remote copies: records unknown locally are inserted as they
        are; known ones go through `merge(local, remote)` when given and
        are left alone otherwise.

        Returns:
            (inserted, merged) counts
        """
        inserted = merged = 0
        async with self._writing() as stored:
            for remote in incoming:
                local = stored.get(remote.id)
                if local is None:
                    stored[remote.id] = remote
                    self._on_upserted(None, remote)
                    inserted += 1
                    continue
                if merge is None:
                    continue
                result = merge(local, remote)
                if result != local:
                    stored[remote.id] = result
                    self._on_upserted(local, result)
                    merged += 1
            if inserted or merged:
                await self._persist()
        return inserted, merged

    # defined last: the name shadows the builtin inside this class body
    async def list(self) -> "list[RecordT]":
        records = await self._ensure_loaded()
        return [*records.values()]


class SyncedRepository(JsonArrayRepository[SyncedT]):
    """Repository for records mirrored to the remote store."""

    async def list_pending(self) -> list[SyncedT]:
        return [record for record in await self.list() if record.is_pending]

    async def mark_synced(self, pushed: Iterable[SyncedT]) -> int:
        """
        Flag pushed records as synced. Returns how many were flagged.

        A record edited again since it was pushed (its `updated_at` moved)
        stays pending, so the newer version goes out on the next pass.
        """
        async with self._writing() as stored:
            count = 0
            for record in pushed:
                current = stored.get(record.id)
                if current is None or current.sync_status == SyncStatus.SYNCED:
                    continue
                if current.updated_at != record.updated_at:
                    continue
                stored[record.id] = current.model_copy(
                    update={"sync_status": SyncStatus.SYNCED}
                )
                count += 1
            if count:
                await self._persist()
            return count


class CategoryRepository(JsonArrayRepository[Category]):
    key = StoreKey.CATEGORIES
    model = Category


class AccountRepository(JsonArrayRepository[Account]):
    key = StoreKey.ACCOUNTS
    model = Account


class TransactionRepository(SyncedRepository[Transaction]):
    key = StoreKey.TRANSACTIONS
    model = Transaction

    async def list_between(self, start: date, end: date) -> list[Transaction]:
        """Transactions dated within [start, end]."""
        return [tx for tx in await self.list() if start <= tx.date <= end]

    async def list_for_category(self, category_id: str) -> list[Transaction]:
        return [tx for tx in await self.list() if tx.category_id == category_id]

    async def list_for_subcategory(self, subcategory_id: str) -> list[Transaction]:
        return [tx for tx in await self.list() if tx.subcategory_id == subcategory_id]


class BudgetRepository(SyncedRepository[Budget]):
    """
    Budgets, indexed by natural key.

    The index maps (category_id, subcategory_id, period_type, start_date)
    to the id of the first budget stored under that key.
    """

    key = StoreKey.BUDGETS
    model = Budget

    def __init__(self, store: KeyValueStore):
        super().__init__(store)
        self._by_natural_key: dict[NaturalKey, str] = {}

    def _capture_state(self) -> tuple:
        return (*super()._capture_state(), dict(self._by_natural_key))

    def _restore_state(self, state: tuple) -> None:
        *base, self._by_natural_key = state
        super()._restore_state(tuple(base))

    def _on_loaded(self, records: dict[str, Budget]) -> None:
        self._by_natural_key = {}
        for record in records.values():
            self._by_natural_key.setdefault(record.natural_key, record.id)

    def _on_upserted(self, previous: Optional[Budget], record: Budget) -> None:
        if previous is not None and previous.natural_key != record.natural_key:
            self._on_removed(previous)
        self._by_natural_key.setdefault(record.natural_key, record.id)

    def _on_removed(self, record: Budget) -> None:
        if self._by_natural_key.get(record.natural_key) != record.id:
            return
        del self._by_natural_key[record.natural_key]
        # another budget may share the key
        for other in (self._records or {}).values():
            if other.id != record.id and other.natural_key == record.natural_key:
                self._by_natural_key[record.natural_key] = other.id
                break

    async def find_by_natural_key(
        self,
        category_id: str,
        subcategory_id: Optional[str],
        period_type: PeriodType,
        start_date: date,
    ) -> Optional[Budget]:
        records = await self._ensure_loaded()
        budget_id = self._by_natural_key.get(
            (category_id, subcategory_id, PeriodType(period_type), start_date)
        )
        return records.get(budget_id) if budget_id else None

    async def merge_by_natural_key(
        self,
        candidates: Iterable[Budget],
        update_fields: Optional[tuple[str, ...]] = None,
    ) -> NaturalKeyMerge:
        """
        Store candidates unless a budget with the same natural key exists.

        Existing budgets get `update_fields` copied from the candidate and
        are marked pending when that changes anything; with no
        `update_fields` they are left untouched. Lookups and the single
        snapshot write happen under the repository lock, so concurrent
        callers cannot create the same natural key twice.
        """
        result = NaturalKeyMerge([], [], [])
        async with self._writing() as stored:
            for candidate in candidates:
                existing_id = self._by_natural_key.get(candidate.natural_key)
                existing = stored.get(existing_id) if existing_id else None

                if existing is None:
                    stored[candidate.id] = candidate
                    self._on_upserted(None, candidate)
                    result.created.append(candidate)
                    continue

                changes = {
                    field: getattr(candidate, field)
                    for field in (update_fields or ())
                    if getattr(existing, field) != getattr(candidate, field)
                }
                if not changes:
                    result.unchanged.append(existing)
                    continue

                changes.update(sync_status=SyncStatus.PENDING, updated_at=utc_now())
                record = existing.model_copy(update=changes)
                stored[record.id] = record
                result.updated.append(record)

            if result.created or result.updated:
                await self._persist()
        return result

    async def add_spent(self, budget_ids: Iterable[str], amount: Decimal) -> list[Budget]:
        """Add `amount` to the spend of each budget and mark it pending."""
        return await self.adjust_spent({budget_id: amount for budget_id in budget_ids})

    async def adjust_spent(self, deltas: dict[str, Decimal]) -> list[Budget]:
        """
        Apply per-budget spend changes in one snapshot write.

        Spend never drops below zero. Raises NotFoundError, writing
        nothing, if any id is unknown.
        """
        async with self._writing() as stored:
            updated = []
            for budget_id, delta in deltas.items():
                previous = stored.get(budget_id)
                if previous is None:
                    raise NotFoundError(f"budgets record not found: {budget_id}")
                record = previous.model_copy(update={
                    "spent": max(Decimal("0"), previous.spent + delta),
                    "sync_status": SyncStatus.PENDING,
                    "updated_at": utc_now(),
                })
                stored[budget_id] = record
                updated.append(record)
            if updated:
                await self._persist()
            return updated

    async def list_recurring(self) -> list[Budget]:
        return [budget for budget in await self.list() if budget.recurring]

    async def list_for_category(self, category_id: str) -> list[Budget]:
        return [b for b in await self.list() if b.category_id == category_id]

    async def list_covering(self, day: date) -> list[Budget]:
        return [b for b in await self.list() if b.covers(day)]


class UserSettingsRepository:
    """The single user settings document."""

    key = StoreKey.USER_SETTINGS

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._lock = asyncio.Lock()

    async def exists(self) -> bool:
        return bool(await self._store.get(self.key.value))

    async def load(self) -> UserSettings:
        raw = await self._store.get(self.key.value)
        if not raw:
            return UserSettings()
        try:
            return UserSettings.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Corrupted user settings: {e}")

    async def save(self, settings: UserSettings) -> UserSettings:
        await self._store.set(self.key.value, settings.model_dump_json(by_alias=True))
        return settings

    async def update(self, **changes: Any) -> UserSettings:
        async with self._lock:
            current = await self.load()
            updated = current.model_copy(update=changes)
            return await self.save(updated)
