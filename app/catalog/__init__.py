"""Product Catalog.

Provides the product catalog core: persistence, query translation,
bulk import decoding, and the service that keeps products, their
attribute assignments and stock history consistent.
"""

from app.catalog.attributes import AttributeRepository
from app.catalog.categories import CategoryRepository
from app.catalog.exceptions import (
    CatalogError,
    EmptyInputError,
    InvalidArgumentError,
    InvalidReferenceError,
    NotFoundError,
    ParseError,
    UnsupportedFormatError,
)
from app.catalog.importer import FileUpload, parse_upload
from app.catalog.models import (
    Attribute,
    AttributeValue,
    Category,
    Product,
    ProductAttribute,
    Restock,
    StockMovement,
)
from app.catalog.query import QueryFeatures, QuerySpec
from app.catalog.repository import ProductRepository
from app.catalog.service import (
    AttributeAssignment,
    BulkImportResult,
    ProductPage,
    ProductService,
)
from app.catalog.slugs import slugify, unique_slug

__all__ = [
    # Models
    "Attribute",
    "AttributeValue",
    "Category",
    "Product",
    "ProductAttribute",
    "Restock",
    "StockMovement",
    # Errors
    "CatalogError",
    "EmptyInputError",
    "InvalidArgumentError",
    "InvalidReferenceError",
    "NotFoundError",
    "ParseError",
    "UnsupportedFormatError",
    # Slugs
    "slugify",
    "unique_slug",
    # Query
    "QueryFeatures",
    "QuerySpec",
    # Import
    "FileUpload",
    "parse_upload",
    # Repositories
    "AttributeRepository",
    "CategoryRepository",
    "ProductRepository",
    # Service
    "AttributeAssignment",
    "BulkImportResult",
    "ProductPage",
    "ProductService",
]
