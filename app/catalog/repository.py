"""Product repository for database operations.

Provides persistence for products, restocks and stock movements. The
repository is bound to a session which acts as the transaction scope:
it flushes so later statements see earlier ones, but never commits.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import load_only, selectinload

from app.catalog.models import (
    Product,
    ProductAttribute,
    Restock,
    StockMovement,
)
from app.catalog.query import Operator, Predicate, QuerySpec


class ProductRepository:
    """Repository for Product database operations.

    Handles all database interactions for products including
    filtering, sorting, and pagination. No business validation
    happens here.

    Example usage:
        async with get_session() as session:
            repo = ProductRepository(session)
            spec = QueryFeatures({"price[lte]": "50"}).filter().paginate().build()
            products = await repo.find_many_products(spec)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def count_products(
        self,
        where: Sequence[Predicate] = (),
        search: str | None = None,
    ) -> int:
        """Count products matching filters.

        Args:
            where: Predicates combined with AND.
            search: Optional free-text term.

        Returns:
            Count of matching products.
        """
        query = select(func.count(Product.id))
        conditions = self._build_conditions(where, search)
        if conditions:
            query = query.where(and_(*conditions))

        result = await self.session.execute(query)
        return result.scalar_one()

    async def find_many_products(self, spec: QuerySpec) -> Sequence[Product]:
        """Find products with filtering, sorting, pagination and projection.

        Args:
            spec: Structured query. An empty ``order_by`` falls back to
                newest first.

        Returns:
            Sequence of matching products. With a projection only the
            selected columns are loaded and attributes are not.
        """
        query = select(Product)

        conditions = self._build_conditions(spec.where, spec.search)
        if conditions:
            query = query.where(and_(*conditions))

        if spec.order_by:
            for term in spec.order_by:
                column = getattr(Product, term.field)
                query = query.order_by(column.desc() if term.descending else column.asc())
        else:
            query = query.order_by(Product.created_at.desc())
        # stable pages when the sort key ties
        query = query.order_by(Product.id.asc())

        query = query.offset(spec.skip).limit(spec.take)

        if spec.select is not None:
            query = query.options(
                load_only(*(getattr(Product, name) for name in spec.select))
            )
        else:
            query = query.options(*self._attribute_loaders())

        result = await self.session.execute(query)
        return result.scalars().all()

    async def find_product_by_id(
        self, product_id: str, for_update: bool = False
    ) -> Product | None:
        """Get product by ID with its attribute assignments.

        Args:
            product_id: Product ID.
            for_update: Lock the product row until the transaction ends.

        Returns:
            Product if found, None otherwise.
        """
        return await self._find_one(Product.id == product_id, for_update=for_update)

    async def find_product_by_slug(self, slug: str) -> Product | None:
        """Get product by slug with its attribute assignments.

        Args:
            slug: Product slug.

        Returns:
            Product if found, None otherwise.
        """
        return await self._find_one(Product.slug == slug)

    async def find_taken_slugs(self, bases: Iterable[str]) -> set[str]:
        """Get every stored slug equal to a base or a suffixed variant of it.

        Args:
            bases: Slug bases about to be allocated.

        Returns:
            Set of slugs already in use.
        """
        patterns = []
        for base in set(bases):
            patterns.append(Product.slug == base)
            patterns.append(Product.slug.like(f"{base}-%"))

        if not patterns:
            return set()

        result = await self.session.execute(select(Product.slug).where(or_(*patterns)))
        return set(result.scalars().all())

    async def list_stock_movements(self, product_id: str) -> Sequence[StockMovement]:
        """Get the stock movement log for a product, newest first.

        Args:
            product_id: Product ID.

        Returns:
            Stock movements.
        """
        result = await self.session.execute(
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id)
        )
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_product(self, data: dict[str, Any]) -> Product:
        """Insert a product.

        Args:
            data: Column values.

        Returns:
            Created product.
        """
        product = Product(**data)
        self.session.add(product)
        await self.session.flush()
        return product

    async def update_product(self, product_id: str, data: dict[str, Any]) -> None:
        """Update scalar columns of a product.

        Args:
            product_id: Product ID.
            data: Column values to change. Empty is a no-op.
        """
        if not data:
            return
        await self.session.execute(
            update(Product).where(Product.id == product_id).values(**data)
        )

    async def create_many_products(self, rows: list[dict[str, Any]]) -> int:
        """Insert many products in one statement.

        Args:
            rows: Column values per product.

        Returns:
            Number of inserted products.
        """
        if not rows:
            return 0
        self.session.add_all([Product(**row) for row in rows])
        await self.session.flush()
        return len(rows)

    async def delete_product(self, product_id: str) -> None:
        """Delete a product together with its assignments and stock history.

        Args:
            product_id: Product ID.
        """
        for model in (ProductAttribute, StockMovement, Restock):
            await self.session.execute(delete(model).where(model.product_id == product_id))
        await self.session.execute(delete(Product).where(Product.id == product_id))

    async def create_restock(
        self,
        product_id: str,
        quantity: int,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> Restock:
        """Record a restock event.

        Args:
            product_id: Product ID.
            quantity: Units received.
            notes: Free-text notes.
            user_id: Acting user.

        Returns:
            Created restock record.
        """
        restock = Restock(
            product_id=product_id,
            quantity=quantity,
            notes=notes,
            user_id=user_id,
        )
        self.session.add(restock)
        await self.session.flush()
        return restock

    async def update_product_stock(self, product_id: str, delta: int) -> None:
        """Adjust product stock atomically in the database.

        Args:
            product_id: Product ID.
            delta: Signed change in units.
        """
        await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + delta)
        )

    async def create_stock_movement(
        self,
        product_id: str,
        quantity: int,
        reason: str,
        user_id: str | None = None,
    ) -> StockMovement:
        """Append a stock movement entry.

        Args:
            product_id: Product ID.
            quantity: Signed change in units.
            reason: Reason code, e.g. "restock".
            user_id: Acting user.

        Returns:
            Created movement.
        """
        movement = StockMovement(
            product_id=product_id,
            quantity=quantity,
            reason=reason,
            user_id=user_id,
        )
        self.session.add(movement)
        await self.session.flush()
        return movement

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_one(self, criterion: Any, for_update: bool = False) -> Product | None:
        query = (
            select(Product)
            .where(criterion)
            .options(*self._attribute_loaders())
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update(of=Product)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    def _attribute_loaders() -> list[Any]:
        attributes = selectinload(Product.attributes)
        return [
            attributes.selectinload(ProductAttribute.attribute),
            attributes.selectinload(ProductAttribute.value),
        ]

    def _build_conditions(
        self,
        where: Sequence[Predicate],
        search: str | None,
    ) -> list[Any]:
        conditions = [self._condition(p) for p in where]

        if search:
            search_pattern = f"%{search}%"
            conditions.append(
                or_(
                    Product.name.ilike(search_pattern),
                    Product.description.ilike(search_pattern),
                )
            )

        return conditions

    def _condition(self, predicate: Predicate) -> Any:
        """Translate a predicate into a SQLAlchemy expression.

        Args:
            predicate: Parsed filter.

        Returns:
            SQLAlchemy boolean expression.
        """
        column = getattr(Product, predicate.field)
        value = predicate.value
        op = predicate.op

        if op is Operator.EQ:
            return column == value
        if op is Operator.NE:
            return column != value
        if op is Operator.GT:
            return column > value
        if op is Operator.GTE:
            return column >= value
        if op is Operator.LT:
            return column < value
        if op is Operator.LTE:
            return column <= value
        if op is Operator.IN:
            return column.in_(value)
        return column.ilike(f"%{value}%")
