"""
Legacy Category Migration

Early data stored transactions and budgets with category *names*
("category" / "subcategory") instead of ids, and sometimes stored a
subcategory's id as the category id. This one-time upgrade rewrites those
records to the id-based shape:

    {"category": "Merienda", ...}
        -> {"categoryId": <Alimentación id>, "subcategoryId": <Merienda id>, ...}

It runs on the raw JSON snapshots (legacy records do not validate as
models), is gated by UserSettings.schema_version, and is the only place
categories are matched by name outside the proration entry point.
Records whose names match no category are left untouched and reported.
"""

import json
from typing import Any, Iterable, Optional

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.models.finance import Category, SyncStatus
from finance_tracker.services.storage.interface import KeyValueStore, StorageError, StoreKey
from finance_tracker.services.storage.repository import (
    CategoryRepository,
    JsonArrayRepository,
    UserSettingsRepository,
)


logger = structlog.get_logger(__name__)

LEGACY_CATEGORY_FIELD = "category"
LEGACY_SUBCATEGORY_FIELD = "subcategory"


class CategoryIndex:
    """Name and id lookups over a category list."""

    def __init__(self, categories: Iterable[Category]):
        self.by_id: dict[str, Category] = {}
        self._by_name: dict[str, list[Category]] = {}
        for category in categories:
            self.by_id[category.id] = category
            self._by_name.setdefault(category.name.strip().casefold(), []).append(category)

    def named(self, name: str, parent_id: Optional[str] = None) -> Optional[Category]:
        """Main categories win over subcategories of the same name."""
        matches = self._by_name.get(name.strip().casefold(), [])
        if parent_id is not None:
            return next((c for c in matches if c.parent_id == parent_id), None)
        return (
            next((c for c in matches if not c.is_subcategory), None)
            or next(iter(matches), None)
        )


def migrate_record(record: dict[str, Any], index: CategoryIndex) -> Optional[dict[str, Any]]:
    """
    Upgrade one raw transaction or budget record.

    Returns:
        The rewritten record, or None when it needs no change or cannot
        be resolved
    """
    updated = dict(record)
    category_id = record.get("categoryId")
    legacy_name = record.get(LEGACY_CATEGORY_FIELD)
    legacy_sub = record.get(LEGACY_SUBCATEGORY_FIELD)

    if category_id:
        category = index.by_id.get(category_id)
    elif legacy_name:
        category = index.named(legacy_name)
    else:
        return None

    if category is None:
        return None

    if category.is_subcategory and category.parent_id in index.by_id:
        updated["categoryId"] = category.parent_id
        updated["subcategoryId"] = category.id
    else:
        updated["categoryId"] = category.id
        if legacy_sub and not record.get("subcategoryId"):
            subcategory = index.named(legacy_sub, parent_id=category.id)
            if subcategory is not None:
                updated["subcategoryId"] = subcategory.id

    updated.pop(LEGACY_CATEGORY_FIELD, None)
    updated.pop(LEGACY_SUBCATEGORY_FIELD, None)
    if updated == record:
        return None

    updated["syncStatus"] = SyncStatus.PENDING.value
    return updated


class LegacyCategoryMigration:
    """Rewrites name-based category references to ids, once."""

    name = "category_names_to_ids"
    version = 1
    keys = (StoreKey.TRANSACTIONS, StoreKey.BUDGETS)

    def __init__(
        self,
        store: KeyValueStore,
        categories: CategoryRepository,
        user_settings: UserSettingsRepository,
        repositories: Iterable[JsonArrayRepository] = (),
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._categories = categories
        self._user_settings = user_settings
        self._repositories = list(repositories)
        self._audit = audit_logger or AuditLogger()

    async def _migrate_key(self, key: StoreKey, index: CategoryIndex) -> tuple[int, int]:
        raw = await self._store.get(key.value)
        if not raw:
            return 0, 0
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupted snapshot for {key.value}: {e}")

        changed = unresolved = 0
        migrated = []
        for record in records:
            if not isinstance(record, dict):
                migrated.append(record)
                continue
            upgraded = migrate_record(record, index)
            if upgraded is not None:
                changed += 1
                migrated.append(upgraded)
                continue
            if not record.get("categoryId"):
                unresolved += 1
                await self._audit.log_integrity_warning(
                    key.value,
                    str(record.get("id", "?")),
                    f"category '{record.get(LEGACY_CATEGORY_FIELD)}' could not be resolved",
                )
            migrated.append(record)

        if changed:
            await self._store.set(key.value, json.dumps(migrated, ensure_ascii=False))
        return changed, unresolved

    async def run(self) -> int:
        """
        Apply the migration if it has not been applied yet.

        Returns:
            Number of records rewritten (0 when already applied)
        """
        settings = await self._user_settings.load()
        if settings.schema_version >= self.version:
            return 0

        index = CategoryIndex(await self._categories.list())
        changed = unresolved = 0
        for key in self.keys:
            key_changed, key_unresolved = await self._migrate_key(key, index)
            changed += key_changed
            unresolved += key_unresolved

        for repository in self._repositories:
            repository.invalidate()

        await self._user_settings.update(schema_version=self.version)
        logger.info(
            "migration_applied",
            migration=self.name,
            records_changed=changed,
            unresolved=unresolved,
        )
        await self._audit.log_migration_applied(self.name, changed)
        return changed
