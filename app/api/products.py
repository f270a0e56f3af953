"""Product API endpoints.

Provides endpoints for the product catalog:
- GET /products - list products (filter, sort, fields, paginate)
- GET /products/{id} - product details
- GET /products/slug/{slug} - product details by slug
- POST /products - create a product
- PATCH /products/{id} - update a product
- DELETE /products/{id} - delete a product
- POST /products/{id}/restock - restock a product
- GET /products/{id}/stock-movements - stock movement log
- POST /products/bulk - bulk import from CSV/XLSX
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    BulkImportResponse,
    ErrorResponse,
    ProductAttributeInput,
    ProductCreateRequest,
    ProductListResponse,
    ProductResponse,
    ProductUpdateRequest,
    RestockRequest,
    RestockResponse,
    StockMovementListResponse,
    StockMovementSchema,
)
from app.catalog.importer import FileUpload
from app.catalog.models import Product
from app.catalog.service import AttributeAssignment, ProductService, get_product_service
from app.infrastructure.database import get_session

router = APIRouter(prefix="/products", tags=["Products"])


# ============================================================================
# Dependencies
# ============================================================================


def get_service(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ProductService:
    """Get product service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_product_service(session, request_id=request_id)


# ============================================================================
# Converters
# ============================================================================


def product_to_response(product: Product) -> ProductResponse:
    """Convert Product to ProductResponse."""
    return ProductResponse.model_validate(product.to_dict())


def to_assignments(
    attributes: list[ProductAttributeInput] | None,
) -> list[AttributeAssignment] | None:
    """Convert request attributes to service assignments."""
    if attributes is None:
        return None
    return [AttributeAssignment(**attr.model_dump()) for attr in attributes]


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=ProductListResponse,
    responses={400: {"model": ErrorResponse}},
    summary="List products",
    description=(
        "List products. Filter with `field=value` or `field[op]=value` "
        "(ops: eq, ne, gt, gte, lt, lte, in, contains), sort with "
        "`sort=-price,name`, project with `fields=name,price`, page with "
        "`page` and `limit`, free-text with `search`."
    ),
)
async def list_products(
    request: Request,
    service: Annotated[ProductService, Depends(get_service)],
) -> ProductListResponse:
    """List products using the raw query string."""
    page = await service.get_all_products(request.query_params)

    return ProductListResponse(
        products=[p.to_dict(fields=page.select) for p in page.products],
        total_results=page.total_results,
        total_pages=page.total_pages,
        current_page=page.current_page,
        results_per_page=page.results_per_page,
        has_more=page.has_next,
    )


@router.get(
    "/slug/{slug}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get product by slug",
)
async def get_product_by_slug(
    slug: str,
    service: Annotated[ProductService, Depends(get_service)],
) -> ProductResponse:
    """Get a product by its URL slug."""
    return product_to_response(await service.get_product_by_slug(slug))


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get product",
)
async def get_product(
    product_id: str,
    service: Annotated[ProductService, Depends(get_service)],
) -> ProductResponse:
    """Get a product by ID."""
    return product_to_response(await service.get_product_by_id(product_id))


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create product",
    description="Create a product. The slug is derived from the name.",
)
async def create_product(
    request: ProductCreateRequest,
    service: Annotated[ProductService, Depends(get_service)],
) -> ProductResponse:
    """Create a product with optional attribute assignments."""
    product = await service.create_product(
        request.model_dump(exclude={"attributes"}),
        attributes=to_assignments(request.attributes),
    )
    return product_to_response(product)


@router.patch(
    "/{product_id}",
    response_model=ProductResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update product",
    description="Update product fields. Supplying `attributes` replaces all of them.",
)
async def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    service: Annotated[ProductService, Depends(get_service)],
) -> ProductResponse:
    """Update a product."""
    changes = request.model_dump(exclude_unset=True, exclude={"attributes"})
    product = await service.update_product(
        product_id,
        changes,
        attributes=to_assignments(request.attributes),
    )
    return product_to_response(product)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete product",
)
async def delete_product(
    product_id: str,
    service: Annotated[ProductService, Depends(get_service)],
) -> Response:
    """Delete a product with its attributes and stock history."""
    await service.delete_product(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/restock",
    response_model=RestockResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Restock product",
)
async def restock_product(
    product_id: str,
    request: RestockRequest,
    service: Annotated[ProductService, Depends(get_service)],
) -> RestockResponse:
    """Add stock to a product and log the movement."""
    restock = await service.restock_product(
        product_id,
        request.quantity,
        notes=request.notes,
        user_id=request.user_id,
    )
    return RestockResponse.model_validate(restock.to_dict())


@router.get(
    "/{product_id}/stock-movements",
    response_model=StockMovementListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Stock movement log",
)
async def list_stock_movements(
    product_id: str,
    service: Annotated[ProductService, Depends(get_service)],
) -> StockMovementListResponse:
    """Get a product's stock movements, newest first."""
    movements = await service.get_stock_movements(product_id)
    return StockMovementListResponse(
        items=[StockMovementSchema.model_validate(m.to_dict()) for m in movements],
        total=len(movements),
    )


@router.post(
    "/bulk",
    response_model=BulkImportResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 415: {"model": ErrorResponse}},
    summary="Bulk import products",
    description=(
        "Create products from a CSV or XLSX upload. Required columns: "
        "name, price, stock. The whole file is rejected if any row is invalid."
    ),
)
async def bulk_create_products(
    service: Annotated[ProductService, Depends(get_service)],
    file: UploadFile | None = File(default=None),
) -> BulkImportResponse:
    """Bulk import products from an uploaded file."""
    upload = None
    if file is not None:
        upload = FileUpload(mimetype=file.content_type or "", buffer=await file.read())

    result = await service.bulk_create_products(upload)
    return BulkImportResponse(count=result.count)
