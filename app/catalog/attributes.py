"""Attribute repository.

Persists attribute definitions and their assignment to products.
"""

from collections.abc import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.models import Attribute, AttributeValue, ProductAttribute
from app.catalog.slugs import slugify


class AttributeRepository:
    """Repository for attributes, attribute values and product assignments.

    One ``assign_attribute_to_product`` call stores one (attribute, value)
    pair; callers fan out multi-value attributes themselves.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def find_existing_attribute_ids(self, attribute_ids: Iterable[str]) -> set[str]:
        """Get which of the given attribute ids exist.

        Args:
            attribute_ids: Candidate ids.

        Returns:
            Subset of ids present in the database.
        """
        ids = set(attribute_ids)
        if not ids:
            return set()
        result = await self.session.execute(select(Attribute.id).where(Attribute.id.in_(ids)))
        return set(result.scalars().all())

    async def find_value_owners(self, value_ids: Iterable[str]) -> dict[str, str]:
        """Get the owning attribute of each existing value id.

        Args:
            value_ids: Candidate ids.

        Returns:
            Mapping of value id to attribute id; unknown ids are absent.
        """
        ids = set(value_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(AttributeValue.id, AttributeValue.attribute_id).where(
                AttributeValue.id.in_(ids)
            )
        )
        return {row.id: row.attribute_id for row in result.all()}

    async def assign_attribute_to_product(
        self,
        product_id: str,
        attribute_id: str,
        value_id: str | None = None,
        custom_value: str | None = None,
    ) -> ProductAttribute:
        """Assign one attribute value to a product.

        Args:
            product_id: Product ID.
            attribute_id: Attribute ID.
            value_id: Optional attribute value ID.
            custom_value: Optional free-text value.

        Returns:
            Created assignment.
        """
        assignment = ProductAttribute(
            product_id=product_id,
            attribute_id=attribute_id,
            value_id=value_id,
            custom_value=custom_value,
        )
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def remove_product_attributes(self, product_id: str) -> None:
        """Delete every attribute assignment of a product.

        Args:
            product_id: Product ID.
        """
        await self.session.execute(
            delete(ProductAttribute).where(ProductAttribute.product_id == product_id)
        )

    async def create_attribute(self, name: str, values: Sequence[str] = ()) -> Attribute:
        """Create an attribute with its permissible values.

        Args:
            name: Attribute name, e.g. "Color".
            values: Permissible values.

        Returns:
            Created attribute.
        """
        attribute = Attribute(
            name=name,
            slug=slugify(name),
            values=[AttributeValue(value=v, slug=slugify(v)) for v in values],
        )
        self.session.add(attribute)
        await self.session.flush()
        return attribute

    async def list_attributes(self) -> Sequence[Attribute]:
        """Get all attributes with their values, by name."""
        result = await self.session.execute(select(Attribute).order_by(Attribute.name))
        return result.scalars().all()
