"""
Expense categories
"""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoledger.core.exceptions import AlreadyExistsError, NotFoundError, ValidationError
from cryptoledger.core.logging import get_logger
from cryptoledger.models.entries import Category

logger = get_logger(__name__)


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self) -> List[Category]:
        result = await self.db.execute(select(Category).order_by(Category.name.asc()))
        return list(result.scalars().all())

    async def create(self, name: str, icon: Optional[str] = None, color: Optional[str] = None) -> Category:
        """
        Raises:
            ValidationError: blank name
            AlreadyExistsError: a category with this name exists, ignoring case
        """
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Category name cannot be empty", {"name": name})

        result = await self.db.execute(
            select(Category).where(func.lower(Category.name) == trimmed.lower())
        )
        if result.scalars().first() is not None:
            raise AlreadyExistsError("Category already exists", {"name": trimmed})

        category = Category(name=trimmed, icon=icon or None, color=color or None)
        self.db.add(category)
        await self.db.flush()

        logger.log_business_event("category_created", {"category_id": category.id, "name": trimmed})
        return category

    async def delete(self, category_id: int) -> None:
        category = await self.db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        await self.db.delete(category)
        await self.db.flush()
        logger.log_business_event("category_deleted", {"category_id": category_id})
