"""Tests for the legacy category-name migration."""

import json
import pytest

from finance_tracker.engine.migration import (
    CategoryIndex,
    LegacyCategoryMigration,
    migrate_record,
)
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import Category, CategoryType, SyncStatus


def legacy_transaction(**fields):
    record = {
        "id": "t1",
        "concept": "Pan",
        "amount": "-5.00",
        "accountId": "acc-cash",
        "date": "2024-01-10",
        "syncStatus": "synced",
    }
    record.update(fields)
    return record


@pytest.fixture
def migration(store, category_repo, settings_repo, transaction_repo, budget_repo, audit_logger):
    return LegacyCategoryMigration(
        store,
        category_repo,
        settings_repo,
        repositories=[transaction_repo, budget_repo],
        audit_logger=audit_logger,
    )


class TestMigrateRecord:
    """Tests for single-record upgrades."""

    @pytest.fixture
    def index(self):
        food = Category(id="food", name="Alimentación", type=CategoryType.EXPENSE)
        snacks = Category(id="snacks", name="Merienda", type=CategoryType.EXPENSE, parent_id="food")
        return CategoryIndex([food, snacks])

    def test_main_category_name(self, index):
        migrated = migrate_record(legacy_transaction(category="alimentación"), index)
        assert migrated["categoryId"] == "food"
        assert "category" not in migrated
        assert migrated["syncStatus"] == SyncStatus.PENDING.value

    def test_subcategory_name_resolves_to_parent(self, index):
        migrated = migrate_record(legacy_transaction(category="Merienda"), index)
        assert migrated["categoryId"] == "food"
        assert migrated["subcategoryId"] == "snacks"

    def test_category_and_subcategory_names(self, index):
        migrated = migrate_record(
            legacy_transaction(category="Alimentación", subcategory="Merienda"), index
        )
        assert (migrated["categoryId"], migrated["subcategoryId"]) == ("food", "snacks")
        assert "subcategory" not in migrated

    def test_subcategory_id_stored_as_category(self, index):
        migrated = migrate_record(legacy_transaction(categoryId="snacks"), index)
        assert (migrated["categoryId"], migrated["subcategoryId"]) == ("food", "snacks")

    def test_current_shape_untouched(self, index):
        assert migrate_record(legacy_transaction(categoryId="food"), index) is None

    def test_unknown_name(self, index):
        assert migrate_record(legacy_transaction(category="Viajes"), index) is None


class TestLegacyCategoryMigration:
    async def test_rewrites_snapshots(
        self, migration, store, transaction_repo, budget_repo, food, snacks
    ):
        await store.set("transactions", json.dumps([
            legacy_transaction(category="Merienda"),
        ]))
        await store.set("budgets", json.dumps([{
            "id": "b1",
            "category": "Alimentación",
            "limit": "100",
            "periodType": "monthly",
            "startDate": "2024-01-01",
            "endDate": "2024-01-31",
        }]))

        assert await migration.run() == 2

        [tx] = await transaction_repo.list()
        assert (tx.category_id, tx.subcategory_id) == (food.id, snacks.id)
        assert tx.sync_status == SyncStatus.PENDING
        [budget] = await budget_repo.list()
        assert budget.category_id == food.id

    async def test_runs_once(self, migration, store, settings_repo, audit_logger, food):
        await store.set("transactions", json.dumps([legacy_transaction(category="Alimentación")]))

        assert await migration.run() == 1
        assert (await settings_repo.load()).schema_version == LegacyCategoryMigration.version

        await store.set("transactions", json.dumps([legacy_transaction(category="Alimentación")]))
        assert await migration.run() == 0
        assert len(audit_logger.events_of(AuditEventType.MIGRATION_APPLIED)) == 1

    async def test_unresolved_records_kept_and_reported(
        self, migration, store, audit_logger, food
    ):
        record = legacy_transaction(id="t9", category="Viajes")
        await store.set("transactions", json.dumps([record]))

        assert await migration.run() == 0

        assert json.loads(await store.get("transactions")) == [record]
        events = audit_logger.events_of(AuditEventType.DATA_INTEGRITY_WARNING)
        assert [e.entity_id for e in events] == ["t9"]

    async def test_empty_store(self, migration, settings_repo):
        assert await migration.run() == 0
        assert (await settings_repo.load()).schema_version == 1
