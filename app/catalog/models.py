"""SQLAlchemy models for the product catalog.

Defines Product, Category, the attribute tables, and the restock and
stock movement audit tables.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class Category(Base):
    """Product category.

    Products reference a category by id; the category does not own them.
    """

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Category(id={self.id}, slug={self.slug})>"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
        }


class Attribute(Base):
    """A named product axis such as "Color" or "Size"."""

    __tablename__ = "attributes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    values: Mapped[list["AttributeValue"]] = relationship(
        "AttributeValue",
        back_populates="attribute",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AttributeValue.value",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Attribute(id={self.id}, name={self.name})>"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "values": [v.to_dict() for v in self.values],
        }


class AttributeValue(Base):
    """One permissible value of an attribute."""

    __tablename__ = "attribute_values"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    attribute_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("attributes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False)

    attribute: Mapped["Attribute"] = relationship("Attribute", back_populates="values")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "value": self.value, "slug": self.slug}


class Product(Base):
    """Product entity in the catalog.

    Aggregate root for its attribute assignments and stock history.

    Attributes:
        id: Unique product identifier (UUID string).
        name: Display name.
        slug: Unique URL-safe identifier derived from the name at creation.
        sku: Optional stock keeping unit.
        description: Product description.
        price: Unit price, never negative.
        discount: Discount percentage (0-100).
        stock: Units on hand, never negative.
        is_new: Merchandising flag.
        is_trending: Merchandising flag.
        is_best_seller: Merchandising flag.
        is_featured: Merchandising flag.
        category_id: Optional category reference.
        images: Ordered list of image URLs.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(550), nullable=False, unique=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_trending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_best_seller: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    images: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    attributes: Mapped[list["ProductAttribute"]] = relationship(
        "ProductAttribute",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint(
            "discount >= 0 AND discount <= 100", name="ck_products_discount_range"
        ),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Product(id={self.id}, slug={self.slug})>"

    def to_dict(self, fields: list[str] | None = None) -> dict[str, Any]:
        """Convert to dictionary.

        Args:
            fields: Restrict output to these columns. ``None`` means
                every column plus the attribute assignments, which must
                have been eagerly loaded.

        Returns:
            Dictionary representation.
        """
        if fields is not None:
            return {name: _jsonable(getattr(self, name)) for name in fields}

        data = {
            column.key: _jsonable(getattr(self, column.key))
            for column in self.__table__.columns
        }
        data["attributes"] = [a.to_dict() for a in self.attributes]
        return data


class ProductAttribute(Base):
    """Assignment of an attribute (and optionally a value) to a product."""

    __tablename__ = "product_attributes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attribute_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("attributes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("attribute_values.id", ondelete="CASCADE"),
        nullable=True,
    )
    custom_value: Mapped[str | None] = mapped_column(String(500), nullable=True)

    product: Mapped["Product"] = relationship("Product", back_populates="attributes")
    attribute: Mapped["Attribute"] = relationship("Attribute", lazy="selectin")
    value: Mapped[Optional["AttributeValue"]] = relationship("AttributeValue", lazy="selectin")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "attribute_id": self.attribute_id,
            "attribute": self.attribute.name if self.attribute else None,
            "value_id": self.value_id,
            "value": self.value.value if self.value else None,
            "custom_value": self.custom_value,
        }


class Restock(Base):
    """Immutable record of a restock event."""

    __tablename__ = "restocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_restocks_quantity_positive"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": _jsonable(self.created_at),
        }


class StockMovement(Base):
    """Append-only stock audit log entry."""

    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # signed delta
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "user_id": self.user_id,
            "created_at": _jsonable(self.created_at),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
