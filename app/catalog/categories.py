"""Category repository."""

from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.models import Category
from app.catalog.slugs import slugify


class CategoryRepository:
    """Repository for Category database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_existing_ids(self, category_ids: Iterable[str]) -> set[str]:
        """Get which of the given category ids exist, in one query.

        Args:
            category_ids: Candidate ids.

        Returns:
            Subset of ids present in the database.
        """
        ids = set(category_ids)
        if not ids:
            return set()
        result = await self.session.execute(select(Category.id).where(Category.id.in_(ids)))
        return set(result.scalars().all())

    async def create_category(self, name: str, description: str | None = None) -> Category:
        category = Category(name=name, slug=slugify(name), description=description)
        self.session.add(category)
        await self.session.flush()
        return category

    async def list_categories(self) -> Sequence[Category]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return result.scalars().all()
