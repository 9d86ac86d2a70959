"""
Category Store

Holds the category tree: a flat list of categories where subcategories point
at their parent. The tree is exactly two levels deep and a subcategory
always has its parent's type; both rules are enforced here, on creation.
"""

from typing import Optional

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.engine.defaults import DEFAULT_CATEGORIES, DEFAULT_SUBCATEGORIES
from finance_tracker.models.finance import Category, CategoryType, CategoryWithChildren
from finance_tracker.services.storage.repository import CategoryRepository
from finance_tracker.validation import ValidationError


logger = structlog.get_logger(__name__)


def _normalize(name: str) -> str:
    return name.strip().casefold()


class CategoryStore:
    """Queries and guarded mutations over the category tree."""

    def __init__(
        self,
        repository: CategoryRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._audit = audit_logger or AuditLogger()

    @property
    def repository(self) -> CategoryRepository:
        return self._repository

    async def get(self, category_id: str) -> Optional[Category]:
        return await self._repository.get(category_id)

    async def all(self) -> list[Category]:
        return await self._repository.list()

    async def main_categories(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        return [
            c for c in await self._repository.list()
            if not c.is_subcategory
            and (category_type is None or c.type == category_type)
        ]

    async def subcategories(self, parent_id: str) -> list[Category]:
        return [
            c for c in await self._repository.list()
            if c.parent_id == parent_id
        ]

    async def parent_of(self, subcategory_id: str) -> Optional[Category]:
        subcategory = await self._repository.get(subcategory_id)
        if subcategory is None or subcategory.parent_id is None:
            return None
        return await self._repository.get(subcategory.parent_id)

    async def hierarchy(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[CategoryWithChildren]:
        """Main categories with their subcategories, both sorted by name."""
        categories = await self._repository.list()
        children: dict[str, list[Category]] = {}
        for category in categories:
            if category.parent_id:
                children.setdefault(category.parent_id, []).append(category)

        tree = []
        for category in sorted(categories, key=lambda c: _normalize(c.name)):
            if category.is_subcategory:
                continue
            if category_type is not None and category.type != category_type:
                continue
            tree.append(CategoryWithChildren(
                category=category,
                children=sorted(
                    children.get(category.id, []),
                    key=lambda c: _normalize(c.name),
                ),
            ))
        return tree

    async def expense_hierarchy(self) -> list[CategoryWithChildren]:
        return await self.hierarchy(CategoryType.EXPENSE)

    async def find_by_name(
        self,
        name: str,
        parent_id: Optional[str] = None,
    ) -> Optional[Category]:
        """
        Case-insensitive lookup of a main category, or of a subcategory
        when `parent_id` is given.
        """
        wanted = _normalize(name)
        for category in await self._repository.list():
            if _normalize(category.name) != wanted:
                continue
            if parent_id is None and not category.is_subcategory:
                return category
            if parent_id is not None and category.parent_id == parent_id:
                return category
        return None

    async def resolve_name(self, name: str) -> Category:
        """
        The main category called `name`.

        Raises:
            ValidationError: If there is none
        """
        category = await self.find_by_name(name)
        if category is None:
            raise ValidationError(f"Unknown category: {name}")
        return category

    async def add_category(
        self,
        name: str,
        category_type: CategoryType,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Category:
        """
        Create a main category.

        Raises:
            ValidationError: If a main category with this name exists
        """
        if await self.find_by_name(name) is not None:
            raise ValidationError(f"Category already exists: {name}")

        fields = {"name": name, "type": category_type}
        if color:
            fields["color"] = color
        if icon:
            fields["icon"] = icon
        category = await self._repository.upsert(Category(**fields))

        await self._audit.log_category_created(category.id, category.name)
        return category

    async def add_subcategory(
        self,
        parent_id: str,
        name: str,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Category:
        """
        Create a subcategory under an existing main category.

        The subcategory inherits the parent's type, and the parent's color
        and icon unless given.

        Raises:
            ValidationError: If the parent is missing or is itself a
                subcategory, or the name is taken under this parent
        """
        parent = await self._repository.get(parent_id)
        if parent is None:
            raise ValidationError(f"Parent category does not exist: {parent_id}")
        if parent.is_subcategory:
            raise ValidationError(
                f"{parent.name} is a subcategory; subcategories cannot be nested"
            )
        if await self.find_by_name(name, parent_id=parent_id) is not None:
            raise ValidationError(f"{parent.name} already has a subcategory {name}")

        subcategory = await self._repository.upsert(Category(
            name=name,
            type=parent.type,
            color=color or parent.color,
            icon=icon or parent.icon,
            is_subcategory=True,
            parent_id=parent.id,
        ))

        await self._audit.log_category_created(
            subcategory.id, subcategory.name, parent_id=parent.id
        )
        return subcategory

    async def ensure_defaults(self) -> int:
        """
        Seed the default categories and subcategories into an empty store.

        Returns the number of categories created (0 if any existed).
        """
        if await self._repository.list():
            return 0

        parents = [
            Category(name=name, type=category_type, color=color, icon=icon)
            for name, category_type, color, icon in DEFAULT_CATEGORIES
        ]
        by_name = {parent.name: parent for parent in parents}
        children = [
            Category(
                name=name,
                type=by_name[parent_name].type,
                color=color,
                icon=icon,
                is_subcategory=True,
                parent_id=by_name[parent_name].id,
            )
            for parent_name, subcategories in DEFAULT_SUBCATEGORIES.items()
            for name, color, icon in subcategories
        ]

        created = await self._repository.upsert_many([*parents, *children])
        logger.info("default_categories_seeded", count=len(created))
        return len(created)
