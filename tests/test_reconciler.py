"""
Tests for sync reconciliation

All passes run against the in-memory gateway; failures are injected with
`gateway.fail_with`.
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    Category,
    CategoryType,
    SyncStatus,
    Transaction,
)
from finance_tracker.services.remote import NetworkError, RemoteError, RemoteTable
from finance_tracker.services.storage import StorageError
from finance_tracker.sync import SyncScheduler, SyncState, merge_budget

from tests.conftest import make_budget


def make_transaction(**overrides) -> Transaction:
    fields = {
        "concept": "Supermercado",
        "amount": Decimal("-85.50"),
        "category_id": "cat-food",
        "account_id": "acc-cash",
        "date": date(2024, 1, 10),
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestReconcile:
    """Tests for a full reconciliation pass."""

    async def test_pending_pushed_and_remote_pulled(self, reconciler, gateway, transaction_repo):
        """Test one pending local and one remote-only transaction end up on both sides."""
        local = await transaction_repo.upsert(make_transaction(concept="Local"))
        remote = make_transaction(concept="Remota")
        gateway.seed(RemoteTable.TRANSACTIONS, [remote.to_remote()])

        report = await reconciler.try_reconcile()

        assert report.succeeded
        assert report.pulled_transactions == 1
        assert report.pushed_transactions == 1

        stored = {tx.id: tx for tx in await transaction_repo.list()}
        assert set(stored) == {local.id, remote.id}
        assert stored[local.id].sync_status == SyncStatus.SYNCED
        assert stored[remote.id].sync_status == SyncStatus.SYNCED

        remote_ids = [r["id"] for r in gateway.records(RemoteTable.TRANSACTIONS)]
        assert remote_ids.count(local.id) == 1
        assert len(remote_ids) == 2

    async def test_repeated_passes_do_not_duplicate(self, reconciler, gateway, transaction_repo, budget_repo):
        await transaction_repo.upsert(make_transaction())
        await budget_repo.upsert(make_budget())

        await reconciler.try_reconcile()
        second = await reconciler.try_reconcile()

        assert second.pushed_transactions == 0
        assert second.pulled_transactions == 0
        assert len(gateway.records(RemoteTable.TRANSACTIONS)) == 1
        assert len(gateway.records(RemoteTable.BUDGETS)) == 1
        assert len(await transaction_repo.list()) == 1

    async def test_remote_copy_never_carries_sync_status(self, reconciler, gateway, budget_repo):
        await budget_repo.upsert(make_budget())
        await reconciler.try_reconcile()
        assert all("syncStatus" not in r for r in gateway.records(RemoteTable.BUDGETS))

    async def test_categories_pulled(self, reconciler, gateway, category_repo):
        category = Category(name="Viajes", type=CategoryType.EXPENSE)
        gateway.seed(RemoteTable.CATEGORIES, [category.to_record()])

        report = await reconciler.try_reconcile()

        assert report.pulled_categories == 1
        assert (await category_repo.get(category.id)).name == "Viajes"

    async def test_invalid_remote_record_skipped(self, reconciler, gateway, transaction_repo):
        gateway.seed(RemoteTable.TRANSACTIONS, [{"id": "broken", "amount": "abc"}])

        report = await reconciler.try_reconcile()

        assert report.succeeded
        assert await transaction_repo.list() == []

    async def test_last_synced_at_recorded(self, reconciler, settings_repo):
        report = await reconciler.try_reconcile()
        assert (await settings_repo.load()).last_synced_at == report.finished_at

    async def test_sync_is_audited(self, reconciler, audit_logger):
        await reconciler.try_reconcile()
        started = audit_logger.events_of(AuditEventType.SYNC_STARTED)
        completed = audit_logger.events_of(AuditEventType.SYNC_COMPLETED)
        assert len(started) == len(completed) == 1
        assert started[0].correlation_id == completed[0].correlation_id


class TestBudgetMerge:
    """Tests for merging budgets present on both sides."""

    def test_remote_values_win(self):
        local = make_budget(sync_status=SyncStatus.SYNCED)
        remote = local.model_copy(update={
            "limit": Decimal("1200"),
            "notes": "Remota",
            "updated_at": local.updated_at + timedelta(minutes=5),
        })

        merged = merge_budget(local, remote)

        assert merged.limit == Decimal("1200")
        assert merged.notes == "Remota"
        assert merged.sync_status == SyncStatus.SYNCED

    def test_remote_none_keeps_local(self):
        local = make_budget(notes="Local", sync_status=SyncStatus.SYNCED)
        remote = local.model_copy(update={"notes": None, "limit": Decimal("900")})

        merged = merge_budget(local, remote)

        assert merged.notes == "Local"
        assert merged.limit == Decimal("900")

    def test_newer_pending_local_wins(self):
        """Test a local edit made after the remote write is not overwritten."""
        remote = make_budget(updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        local = remote.model_copy(update={
            "limit": Decimal("700"),
            "sync_status": SyncStatus.PENDING,
            "updated_at": datetime(2024, 1, 2, tzinfo=timezone.utc),
        })

        assert merge_budget(local, remote) is local

    def test_identical_returns_local(self):
        local = make_budget()
        assert merge_budget(local, local.model_copy()) is local

    async def test_merged_during_pull(self, reconciler, gateway, budget_repo):
        local = await budget_repo.upsert(make_budget())
        await reconciler.try_reconcile()

        remote = (await budget_repo.get(local.id)).to_remote()
        remote["limit"] = "1500.00"
        remote["updatedAt"] = (datetime.now(timezone.utc) + timedelta(minutes=1)).isoformat()
        gateway.seed(RemoteTable.BUDGETS, [remote])

        report = await reconciler.try_reconcile()

        assert report.merged_budgets == 1
        merged = await budget_repo.get(local.id)
        assert merged.limit == Decimal("1500")
        assert merged.sync_status == SyncStatus.SYNCED


class TestSyncFailures:
    """Tests for offline and remote error paths."""

    async def test_offline_defers(self, reconciler, gateway, connectivity, transaction_repo, audit_logger):
        """Test an offline pass touches nothing and is not a failure."""
        connectivity.online = False
        await transaction_repo.upsert(make_transaction())

        report = await reconciler.try_reconcile()

        assert report.offline is True
        assert report.error is None
        assert reconciler.state == SyncState.IDLE
        assert gateway.calls == []
        assert len(await transaction_repo.list_pending()) == 1
        assert audit_logger.events_of(AuditEventType.SYNC_SKIPPED_OFFLINE)

    @pytest.mark.parametrize("error", [RemoteError("quota exceeded"), NetworkError("timeout")])
    async def test_remote_error_leaves_records_pending(
        self, reconciler, gateway, transaction_repo, budget_repo, audit_logger, error
    ):
        await transaction_repo.upsert(make_transaction())
        await budget_repo.upsert(make_budget())
        gateway.fail_with = error

        report = await reconciler.try_reconcile()

        assert report.error == str(error)
        assert reconciler.state == SyncState.FAILED
        assert len(await transaction_repo.list_pending()) == 1
        assert len(await budget_repo.list_pending()) == 1
        assert audit_logger.events_of(AuditEventType.SYNC_FAILED)

    async def test_recovers_after_failure(self, reconciler, gateway, transaction_repo):
        await transaction_repo.upsert(make_transaction())
        gateway.fail_with = RemoteError("down")
        await reconciler.try_reconcile()

        gateway.fail_with = None
        report = await reconciler.try_reconcile()

        assert report.succeeded
        assert reconciler.state == SyncState.IDLE
        assert await transaction_repo.list_pending() == []

    async def test_storage_error_propagates_and_releases_guard(self, reconciler, transaction_repo, store):
        await store.set("transactions", "not json")
        transaction_repo.invalidate()

        with pytest.raises(StorageError):
            await reconciler.try_reconcile()

        assert reconciler.state == SyncState.FAILED
        assert not reconciler.is_running


class TestReentrancy:
    """Tests for the single-pass guard."""

    async def test_concurrent_call_returns_none(self, reconciler, gateway):
        release = asyncio.Event()
        original = gateway.select_all

        async def slow_select_all(table, order_by=None):
            await release.wait()
            return await original(table, order_by)

        gateway.select_all = slow_select_all

        first = asyncio.create_task(reconciler.try_reconcile())
        await asyncio.sleep(0)
        assert reconciler.is_running

        assert await reconciler.try_reconcile() is None

        release.set()
        report = await first
        assert report.succeeded
        assert reconciler.state == SyncState.IDLE

    async def test_edit_during_push_stays_pending(self, reconciler, gateway, budget_repo):
        """Test a record edited mid-pass is pushed again on the next pass."""
        budget = await budget_repo.upsert(make_budget())
        original = gateway.upsert

        async def upsert_then_edit(table, records, on_conflict="id"):
            await original(table, records, on_conflict)
            if table == RemoteTable.BUDGETS:
                await budget_repo.update(budget.id, limit=Decimal("1100"))

        gateway.upsert = upsert_then_edit

        await reconciler.try_reconcile()

        assert [b.id for b in await budget_repo.list_pending()] == [budget.id]


class TestSyncScheduler:
    """Tests for debounced scheduling."""

    async def test_requests_collapse_into_one_pass(self, reconciler, gateway, transaction_repo):
        scheduler = SyncScheduler(reconciler, debounce_seconds=0.01)
        await transaction_repo.upsert(make_transaction())

        for _ in range(5):
            scheduler.request_sync()
        await scheduler.flush()

        assert [c for c in gateway.calls if c[0] == "upsert"] == [("upsert", RemoteTable.TRANSACTIONS)]
        assert await transaction_repo.list_pending() == []

    async def test_close_drops_scheduled_pass(self, reconciler, gateway):
        scheduler = SyncScheduler(reconciler, debounce_seconds=60)
        scheduler.request_sync()
        assert scheduler.pending

        await scheduler.close()

        assert not scheduler.pending
        assert gateway.calls == []

    async def test_connectivity_restored_schedules_pass(self, reconciler, gateway):
        scheduler = SyncScheduler(reconciler, debounce_seconds=0)
        await scheduler.on_connectivity_restored()
        await scheduler.flush()
        assert ("select_all", RemoteTable.CATEGORIES) in gateway.calls


    async def test_flush_waits_for_earlier_running_pass(self, reconciler, gateway, transaction_repo):
        """Test a later request does not hide a pass that is still running."""
        release = asyncio.Event()
        original = gateway.select_all

        async def slow_select_all(table, order_by=None):
            await release.wait()
            return await original(table, order_by)

        gateway.select_all = slow_select_all
        scheduler = SyncScheduler(reconciler, debounce_seconds=0)
        await transaction_repo.upsert(make_transaction())

        scheduler.request_sync()
        await asyncio.sleep(0.01)
        scheduler.request_sync()
        await asyncio.sleep(0.01)

        flushing = asyncio.ensure_future(scheduler.flush())
        await asyncio.sleep(0.01)
        assert not flushing.done()

        release.set()
        await flushing

        assert scheduler.running_passes == 0
        assert await transaction_repo.list_pending() == []
