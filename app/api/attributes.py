"""Attribute API endpoints.

Attributes and their values are shared definitions that products
reference by id.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    AttributeCreateRequest,
    AttributeListResponse,
    AttributeResponse,
    ErrorResponse,
)
from app.catalog.attributes import AttributeRepository
from app.catalog.exceptions import InvalidArgumentError
from app.catalog.slugs import slugify
from app.infrastructure.database import get_session, transactional

router = APIRouter(prefix="/attributes", tags=["Attributes"])


@router.get(
    "",
    response_model=AttributeListResponse,
    summary="List attributes",
)
async def list_attributes(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AttributeListResponse:
    """List all attributes with their values."""
    attributes = await AttributeRepository(session).list_attributes()
    return AttributeListResponse(
        items=[AttributeResponse.model_validate(a.to_dict()) for a in attributes],
        total=len(attributes),
    )


@router.post(
    "",
    response_model=AttributeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create attribute",
)
async def create_attribute(
    request: AttributeCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AttributeResponse:
    """Create an attribute together with its permissible values."""
    if not slugify(request.name):
        raise InvalidArgumentError(
            "Name must contain at least one letter or digit",
            details={"name": request.name},
        )

    try:
        async with transactional(session):
            attribute = await AttributeRepository(session).create_attribute(
                name=request.name,
                values=request.values,
            )
    except IntegrityError as exc:
        raise InvalidArgumentError(
            f"Attribute already exists: {request.name}",
            details={"name": request.name},
        ) from exc

    return AttributeResponse.model_validate(attribute.to_dict())
