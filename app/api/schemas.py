"""API schemas for the catalog API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] | dict[str, Any] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


# ============================================================================
# Product Schemas
# ============================================================================


class ProductAttributeInput(BaseModel):
    """Attribute assignment in a create/update request."""

    attribute_id: str = Field(..., description="Attribute identifier")
    value_id: str | None = Field(default=None, description="Single attribute value")
    value_ids: list[str] | None = Field(
        default=None, description="Several values of the attribute"
    )
    custom_value: str | None = Field(default=None, description="Free-text value")


class ProductCreateRequest(BaseModel):
    """Request to create a product."""

    name: str = Field(..., min_length=1, max_length=500, description="Display name")
    sku: str | None = Field(default=None, max_length=100, description="Stock keeping unit")
    description: str | None = Field(default=None, description="Product description")
    price: Decimal = Field(..., description="Unit price")
    discount: float = Field(default=0, description="Discount percentage (0-100)")
    stock: int = Field(default=0, description="Units on hand")
    is_new: bool = False
    is_trending: bool = False
    is_best_seller: bool = False
    is_featured: bool = False
    category_id: str | None = Field(default=None, description="Category identifier")
    images: list[str] = Field(default_factory=list, description="Image URLs in display order")
    attributes: list[ProductAttributeInput] | None = Field(
        default=None, description="Attribute assignments"
    )


class ProductUpdateRequest(BaseModel):
    """Request to update a product. Only supplied fields change.

    Supplying ``attributes`` replaces the product's whole attribute set.
    """

    name: str | None = Field(default=None, max_length=500)
    sku: str | None = Field(default=None, max_length=100)
    description: str | None = None
    price: Decimal | None = None
    discount: float | None = None
    stock: int | None = None
    is_new: bool | None = None
    is_trending: bool | None = None
    is_best_seller: bool | None = None
    is_featured: bool | None = None
    category_id: str | None = None
    images: list[str] | None = None
    attributes: list[ProductAttributeInput] | None = None


class ProductAttributeSchema(BaseModel):
    """Attribute assignment on a product."""

    id: str
    attribute_id: str
    attribute: str | None = None
    value_id: str | None = None
    value: str | None = None
    custom_value: str | None = None


class ProductResponse(BaseModel):
    """Full product representation."""

    id: str
    name: str
    slug: str
    sku: str | None = None
    description: str | None = None
    price: float
    discount: float
    stock: int
    is_new: bool
    is_trending: bool
    is_best_seller: bool
    is_featured: bool
    category_id: str | None = None
    images: list[str] = Field(default_factory=list)
    attributes: list[ProductAttributeSchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    """Paginated product listing.

    Items carry only the requested ``fields`` when a projection was asked for.
    """

    products: list[dict[str, Any]] = Field(..., description="Products on this page")
    total_results: int = Field(..., description="Total matching products")
    total_pages: int = Field(..., description="Number of pages")
    current_page: int = Field(..., description="Current page number")
    results_per_page: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


class RestockRequest(BaseModel):
    """Request to restock a product."""

    quantity: int = Field(..., description="Units received, must be positive")
    notes: str | None = Field(default=None, description="Free-text notes")
    user_id: str | None = Field(default=None, description="Acting user")


class RestockResponse(BaseModel):
    """Recorded restock."""

    id: str
    product_id: str
    quantity: int
    notes: str | None = None
    user_id: str | None = None
    created_at: datetime


class StockMovementSchema(BaseModel):
    """Stock movement log entry."""

    id: str
    product_id: str
    quantity: int
    reason: str
    user_id: str | None = None
    created_at: datetime


class StockMovementListResponse(BaseModel):
    """Stock movement log of a product."""

    items: list[StockMovementSchema]
    total: int


class BulkImportResponse(BaseModel):
    """Result of a bulk import."""

    count: int = Field(..., description="Number of products created")


# ============================================================================
# Category Schemas
# ============================================================================


class CategoryCreateRequest(BaseModel):
    """Request to create a category."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None


class CategoryResponse(BaseModel):
    """Category representation."""

    id: str
    name: str
    slug: str
    description: str | None = None


class CategoryListResponse(BaseModel):
    """List of categories."""

    items: list[CategoryResponse]
    total: int


# ============================================================================
# Attribute Schemas
# ============================================================================


class AttributeCreateRequest(BaseModel):
    """Request to create an attribute with its values."""

    name: str = Field(..., min_length=1, max_length=100)
    values: list[str] = Field(default_factory=list, description="Permissible values")


class AttributeValueSchema(BaseModel):
    """Attribute value representation."""

    id: str
    value: str
    slug: str


class AttributeResponse(BaseModel):
    """Attribute representation."""

    id: str
    name: str
    slug: str
    values: list[AttributeValueSchema] = Field(default_factory=list)


class AttributeListResponse(BaseModel):
    """List of attributes."""

    items: list[AttributeResponse]
    total: int
