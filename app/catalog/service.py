"""Catalog service for product operations.

High-level service that combines repository operations with the
catalog's business rules. Every mutating operation validates first and
then writes inside a single transaction, so callers see either the
complete effect or none of it.
"""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.attributes import AttributeRepository
from app.catalog.categories import CategoryRepository
from app.catalog.exceptions import (
    EmptyInputError,
    InvalidArgumentError,
    InvalidReferenceError,
    NotFoundError,
)
from app.catalog.importer import FileUpload, parse_upload
from app.catalog.models import Product, Restock, StockMovement
from app.catalog.query import (
    QueryFeatures,
    coerce_bool,
    coerce_decimal,
    coerce_float,
    coerce_int,
    normalize_field,
)
from app.catalog.repository import ProductRepository
from app.catalog.slugs import FALLBACK_SLUG, slugify, unique_slug
from app.infrastructure.config import settings
from app.infrastructure.database import transactional

logger = structlog.get_logger()

RESTOCK_REASON = "restock"
ADJUSTMENT_REASON = "adjustment"

WRITABLE_FIELDS = frozenset(
    {
        "name",
        "sku",
        "description",
        "price",
        "discount",
        "stock",
        "is_new",
        "is_trending",
        "is_best_seller",
        "is_featured",
        "category_id",
        "images",
    }
)
FLAG_FIELDS = ("is_new", "is_trending", "is_best_seller", "is_featured")
IMPORT_REQUIRED_FIELDS = ("name", "price", "stock")


# ============================================================================
# Service Types
# ============================================================================


@dataclass
class AttributeAssignment:
    """Requested attribute assignment for a product.

    Attributes:
        attribute_id: Attribute to assign.
        value_id: Single attribute value.
        value_ids: Several values of the same attribute; wins over value_id.
        custom_value: Free-text value stored with every association.
    """

    attribute_id: str
    value_id: str | None = None
    value_ids: list[str] | None = None
    custom_value: str | None = None

    @property
    def resolved_value_ids(self) -> list[str]:
        """Value ids this assignment fans out to."""
        if self.value_ids:
            return list(self.value_ids)
        if self.value_id:
            return [self.value_id]
        return []


@dataclass
class ProductPage:
    """One page of a product listing.

    Attributes:
        products: Products on this page.
        total_results: Total matching products.
        total_pages: Number of pages at this page size.
        current_page: 1-based page number.
        results_per_page: Page size.
        select: Projection applied, ``None`` for all fields.
    """

    products: list[Product]
    total_results: int
    total_pages: int
    current_page: int
    results_per_page: int
    select: list[str] | None = None

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        return self.current_page < self.total_pages


@dataclass
class BulkImportResult:
    """Result of a bulk import."""

    count: int
    slugs: list[str] = field(default_factory=list)


# ============================================================================
# Normalization
# ============================================================================


def normalize_product_data(
    data: Mapping[str, Any],
    *,
    required: Sequence[str] = (),
    label: str = "product",
    ignore_unknown: bool = False,
) -> dict[str, Any]:
    """Validate and coerce product fields.

    Keys may be snake_case or camelCase. Loosely-typed values (strings
    from CSV cells, floats from spreadsheets) are coerced to the column
    types. Blank values count as absent.

    Args:
        data: Raw field mapping.
        required: Fields that must be present and non-blank.
        label: How to name the input in error messages.
        ignore_unknown: Drop keys that are not product fields instead of
            rejecting them. Spreadsheets often carry extra columns.

    Returns:
        Clean column mapping containing only the fields supplied.

    Raises:
        InvalidArgumentError: On unknown, missing, uncoercible or
            out-of-range fields.
    """
    values: dict[str, Any] = {}
    for key, value in data.items():
        column = normalize_field(str(key))
        if column not in WRITABLE_FIELDS:
            if ignore_unknown:
                continue
            raise InvalidArgumentError(
                f"Unknown field '{key}' in {label}", details={"field": str(key)}
            )
        if isinstance(value, str):
            value = value.strip()
        values[column] = value

    missing = [name for name in required if values.get(name) in (None, "")]
    if missing:
        raise InvalidArgumentError(
            f"Invalid {label}: missing required field(s) {', '.join(missing)}",
            details={"missing": missing},
        )

    clean: dict[str, Any] = {}
    try:
        for column, value in values.items():
            clean[column] = _coerce_column(column, value)
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Invalid {label}: {exc}", details={"field": column}
        ) from exc

    if "name" in clean and not clean["name"]:
        raise InvalidArgumentError(f"Invalid {label}: name must not be blank")
    if clean.get("price") is not None and clean["price"] < 0:
        raise InvalidArgumentError(f"Invalid {label}: price must not be negative")
    if clean.get("stock") is not None and clean["stock"] < 0:
        raise InvalidArgumentError(f"Invalid {label}: stock must not be negative")
    if clean.get("discount") is not None and not 0 <= clean["discount"] <= 100:
        raise InvalidArgumentError(f"Invalid {label}: discount must be between 0 and 100")

    return clean


def _coerce_column(column: str, value: Any) -> Any:
    blank = value is None or value == ""

    if column == "price":
        return None if blank else coerce_decimal(value)
    if column == "stock":
        return None if blank else coerce_int(value)
    if column == "discount":
        return 0.0 if blank else coerce_float(value)
    if column in FLAG_FIELDS:
        return False if blank else coerce_bool(value)
    if column == "images":
        if blank:
            return []
        if isinstance(value, (list, tuple)):
            parts = list(value)
        else:
            # spreadsheet cells may hold a bare number
            parts = str(value).split(",")
        return [str(p).strip() for p in parts if str(p).strip()]
    if column == "name":
        return "" if blank else str(value)
    # sku, description, category_id
    return None if blank else str(value)


# ============================================================================
# Product Service
# ============================================================================


class ProductService:
    """Service for product catalog operations.

    Example usage:
        async with async_session_factory() as session:
            service = ProductService(session)
            product = await service.create_product(
                {"name": "Blue Mug", "price": "9.99", "stock": 10}
            )
            await service.restock_product(product.id, 5, notes="weekly delivery")
    """

    def __init__(self, session: AsyncSession, request_id: str | None = None) -> None:
        """Initialize service with database session.

        Args:
            session: Async SQLAlchemy session, the transaction scope.
            request_id: Request ID for log correlation.
        """
        self.session = session
        self.request_id = request_id
        self.products = ProductRepository(session)
        self.attributes = AttributeRepository(session)
        self.categories = CategoryRepository(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all_products(self, query_string: Mapping[str, Any]) -> ProductPage:
        """List products per query-string filters, sorting and paging.

        Args:
            query_string: Untyped query parameters.

        Returns:
            Page of products with pagination metadata.
        """
        spec = (
            QueryFeatures(query_string)
            .filter()
            .sort()
            .limit_fields()
            .paginate()
            .build()
        )

        total = await self.products.count_products(spec.where, spec.search)
        products = await self.products.find_many_products(spec)

        return ProductPage(
            products=list(products),
            total_results=total,
            total_pages=math.ceil(total / spec.take),
            current_page=spec.skip // spec.take + 1,
            results_per_page=spec.take,
            select=spec.select,
        )

    async def get_product_by_id(self, product_id: str) -> Product:
        """Get product by ID.

        Raises:
            NotFoundError: If no such product exists.
        """
        product = await self.products.find_product_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def get_product_by_slug(self, slug: str) -> Product:
        """Get product by slug.

        Raises:
            NotFoundError: If no such product exists.
        """
        product = await self.products.find_product_by_slug(slug)
        if product is None:
            raise NotFoundError("Product", slug, field="slug")
        return product

    async def get_stock_movements(self, product_id: str) -> list[StockMovement]:
        """Get a product's stock movement log, newest first.

        Raises:
            NotFoundError: If no such product exists.
        """
        await self.get_product_by_id(product_id)
        return list(await self.products.list_stock_movements(product_id))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_product(
        self,
        data: Mapping[str, Any],
        attributes: Sequence[AttributeAssignment] | None = None,
    ) -> Product:
        """Create a product with optional attribute assignments.

        All attribute, value and category references are checked before
        anything is written. The slug comes from the name; if it is
        taken a numeric suffix is appended.

        Args:
            data: Product fields.
            attributes: Attribute assignments.

        Returns:
            Created product with its attributes loaded.

        Raises:
            InvalidArgumentError: If fields are missing or invalid.
            InvalidReferenceError: If a referenced id does not exist.
        """
        clean = normalize_product_data(data, required=("name", "price"))

        async with transactional(self.session):
            if attributes:
                await self._validate_attributes(attributes)
            if clean.get("category_id"):
                await self._validate_categories([clean["category_id"]])

            base = slugify(clean["name"]) or FALLBACK_SLUG
            taken = await self.products.find_taken_slugs([base])
            clean["slug"] = unique_slug(base, taken)

            product = await self.products.create_product(clean)
            if attributes:
                await self._assign_attributes(product.id, attributes)

            created = await self.products.find_product_by_id(product.id)

        logger.info(
            "Product created",
            product_id=created.id,
            slug=created.slug,
            attribute_count=len(created.attributes),
            request_id=self.request_id,
        )
        return created

    async def update_product(
        self,
        product_id: str,
        data: Mapping[str, Any],
        attributes: Sequence[AttributeAssignment] | None = None,
    ) -> Product:
        """Update product fields and optionally replace its attributes.

        When ``attributes`` is given, the product's existing assignments
        are replaced by exactly that list; ``None`` leaves them alone.
        The slug is kept even if the name changes. A stock change is
        logged as an adjustment movement.

        Args:
            product_id: Product ID.
            data: Fields to change.
            attributes: New complete attribute list.

        Returns:
            Updated product with its attributes loaded.

        Raises:
            NotFoundError: If no such product exists.
            InvalidArgumentError: If fields are invalid.
            InvalidReferenceError: If a referenced id does not exist.
        """
        clean = normalize_product_data(data)
        for column in ("price", "stock"):
            if column in clean and clean[column] is None:
                raise InvalidArgumentError(f"Invalid product: {column} must not be empty")

        async with transactional(self.session):
            existing = await self.products.find_product_by_id(product_id, for_update=True)
            if existing is None:
                raise NotFoundError("Product", product_id)
            stock_before = existing.stock

            if attributes:
                await self._validate_attributes(attributes)
            if clean.get("category_id"):
                await self._validate_categories([clean["category_id"]])

            await self.products.update_product(product_id, clean)

            delta = clean["stock"] - stock_before if "stock" in clean else 0
            if delta:
                await self.products.create_stock_movement(
                    product_id=product_id,
                    quantity=delta,
                    reason=ADJUSTMENT_REASON,
                )

            if attributes is not None:
                await self.attributes.remove_product_attributes(product_id)
                await self._assign_attributes(product_id, attributes)

            updated = await self.products.find_product_by_id(product_id)

        logger.info(
            "Product updated",
            product_id=product_id,
            fields=sorted(clean),
            attributes_replaced=attributes is not None,
            request_id=self.request_id,
        )
        return updated

    async def restock_product(
        self,
        product_id: str,
        quantity: int,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> Restock:
        """Add stock and record the restock and movement.

        The restock record, stock increment and movement entry commit
        together or not at all.

        Args:
            product_id: Product ID.
            quantity: Units received, must be positive.
            notes: Free-text notes.
            user_id: Acting user.

        Returns:
            Created restock record.

        Raises:
            InvalidArgumentError: If quantity is not positive.
            NotFoundError: If no such product exists.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidArgumentError(
                "Quantity must be positive", details={"quantity": quantity}
            )

        async with transactional(self.session):
            if await self.products.find_product_by_id(product_id) is None:
                raise NotFoundError("Product", product_id)

            restock = await self.products.create_restock(
                product_id=product_id,
                quantity=quantity,
                notes=notes,
                user_id=user_id,
            )
            await self.products.update_product_stock(product_id, quantity)
            await self.products.create_stock_movement(
                product_id=product_id,
                quantity=quantity,
                reason=RESTOCK_REASON,
                user_id=user_id,
            )

        logger.info(
            "Product restocked",
            product_id=product_id,
            quantity=quantity,
            user_id=user_id,
            request_id=self.request_id,
        )
        return restock

    async def bulk_create_products(self, upload: FileUpload | None) -> BulkImportResult:
        """Create products from an uploaded CSV or XLSX file.

        Runs in two phases: every row is validated and normalized first,
        then all rows are inserted at once. Any invalid row or unknown
        category rejects the whole file.

        Args:
            upload: Uploaded file.

        Returns:
            Number of products created.

        Raises:
            EmptyInputError: If no file was uploaded or it has no rows.
            UnsupportedFormatError: If the file type is not CSV or XLSX.
            ParseError: If the file cannot be decoded.
            InvalidArgumentError: If any row is invalid.
            InvalidReferenceError: If any category id does not exist.
        """
        if upload is None:
            raise EmptyInputError("No file uploaded")
        if len(upload.buffer) > settings.max_upload_bytes:
            raise InvalidArgumentError(
                "File too large",
                details={"size": len(upload.buffer), "limit": settings.max_upload_bytes},
            )

        records = parse_upload(upload.buffer, upload.mimetype)
        if not records:
            raise EmptyInputError("File is empty")

        ignored = sorted(
            {str(key) for key in records[0] if normalize_field(str(key)) not in WRITABLE_FIELDS}
        )
        if ignored:
            logger.info(
                "Bulk import ignoring unknown columns",
                columns=ignored,
                request_id=self.request_id,
            )

        try:
            rows = [
                normalize_product_data(
                    record,
                    required=IMPORT_REQUIRED_FIELDS,
                    label=f"record at row {index}",
                    ignore_unknown=True,
                )
                for index, record in enumerate(records, start=1)
            ]
        except InvalidArgumentError as exc:
            logger.warning(
                "Bulk import rejected",
                reason=exc.message,
                row_count=len(records),
                request_id=self.request_id,
            )
            raise

        async with transactional(self.session):
            category_ids = {row["category_id"] for row in rows if row.get("category_id")}
            await self._validate_categories(category_ids)

            bases = [slugify(row["name"]) or FALLBACK_SLUG for row in rows]
            taken = await self.products.find_taken_slugs(bases)
            for row, base in zip(rows, bases):
                row["slug"] = unique_slug(base, taken)
                taken.add(row["slug"])

            count = await self.products.create_many_products(rows)

        logger.info(
            "Bulk import completed",
            count=count,
            mimetype=upload.mimetype,
            request_id=self.request_id,
        )
        return BulkImportResult(count=count, slugs=[row["slug"] for row in rows])

    async def delete_product(self, product_id: str) -> None:
        """Delete a product with its attributes and stock history.

        Raises:
            NotFoundError: If no such product exists.
        """
        async with transactional(self.session):
            if await self.products.find_product_by_id(product_id) is None:
                raise NotFoundError("Product", product_id)
            await self.products.delete_product(product_id)

        logger.info("Product deleted", product_id=product_id, request_id=self.request_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _validate_attributes(self, attributes: Sequence[AttributeAssignment]) -> None:
        """Check every referenced attribute and value exists, all at once."""
        attribute_ids = {a.attribute_id for a in attributes}
        found = await self.attributes.find_existing_attribute_ids(attribute_ids)
        if found != attribute_ids:
            raise InvalidReferenceError("attribute", list(attribute_ids - found))

        value_ids = {v for a in attributes for v in a.resolved_value_ids}
        if value_ids:
            owners = await self.attributes.find_value_owners(value_ids)
            if owners.keys() != value_ids:
                raise InvalidReferenceError("attribute value", list(value_ids - owners.keys()))

            for assignment in attributes:
                for value_id in assignment.resolved_value_ids:
                    if owners[value_id] != assignment.attribute_id:
                        raise InvalidArgumentError(
                            f"Attribute value {value_id} does not belong to "
                            f"attribute {assignment.attribute_id}",
                            details={
                                "attribute_id": assignment.attribute_id,
                                "value_id": value_id,
                            },
                        )

    async def _validate_categories(self, category_ids: Sequence[str] | set[str]) -> None:
        """Check every referenced category exists, in one query."""
        requested = set(category_ids)
        if not requested:
            return
        found = await self.categories.find_existing_ids(requested)
        if found != requested:
            raise InvalidReferenceError("category", list(requested - found))

    async def _assign_attributes(
        self,
        product_id: str,
        attributes: Sequence[AttributeAssignment],
    ) -> None:
        """Store one association per value; none given stores one without."""
        for assignment in attributes:
            value_ids: list[str | None] = list(assignment.resolved_value_ids) or [None]
            for value_id in value_ids:
                await self.attributes.assign_attribute_to_product(
                    product_id=product_id,
                    attribute_id=assignment.attribute_id,
                    value_id=value_id,
                    custom_value=assignment.custom_value,
                )


def get_product_service(session: AsyncSession, request_id: str | None = None) -> ProductService:
    """Get product service instance.

    Args:
        session: Request-scoped session.
        request_id: Request ID for correlation.

    Returns:
        ProductService instance.
    """
    return ProductService(session, request_id=request_id)
