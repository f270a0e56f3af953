"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from app.api.attributes import router as attributes_router
from app.api.categories import router as categories_router
from app.api.health import router as health_router
from app.api.products import router as products_router

__all__ = [
    "attributes_router",
    "categories_router",
    "health_router",
    "products_router",
]
