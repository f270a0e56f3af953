"""Category API endpoints.

Categories are referenced by products and validated on create,
update and bulk import.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    CategoryCreateRequest,
    CategoryListResponse,
    CategoryResponse,
    ErrorResponse,
)
from app.catalog.categories import CategoryRepository
from app.catalog.exceptions import InvalidArgumentError
from app.catalog.slugs import slugify
from app.infrastructure.database import get_session, transactional

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get(
    "",
    response_model=CategoryListResponse,
    summary="List categories",
)
async def list_categories(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CategoryListResponse:
    """List all categories by name."""
    categories = await CategoryRepository(session).list_categories()
    return CategoryListResponse(
        items=[CategoryResponse.model_validate(c.to_dict()) for c in categories],
        total=len(categories),
    )


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create category",
)
async def create_category(
    request: CategoryCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CategoryResponse:
    """Create a category; its slug must be unused."""
    if not slugify(request.name):
        raise InvalidArgumentError(
            "Name must contain at least one letter or digit",
            details={"name": request.name},
        )

    try:
        async with transactional(session):
            category = await CategoryRepository(session).create_category(
                name=request.name,
                description=request.description,
            )
    except IntegrityError as exc:
        raise InvalidArgumentError(
            f"Category already exists: {request.name}",
            details={"name": request.name},
        ) from exc

    return CategoryResponse.model_validate(category.to_dict())
