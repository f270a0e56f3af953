"""Shared fixtures for catalog tests.

Tests run against an in-memory SQLite database. A single connection is
shared through StaticPool so every session sees the same schema.
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.catalog.attributes import AttributeRepository
from app.catalog.categories import CategoryRepository
from app.catalog.models import Attribute, Category
from app.catalog.service import ProductService
from app.infrastructure.database import Base, get_session, transactional
from app.main import app


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory database with the catalog schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test database."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def service(session: AsyncSession) -> ProductService:
    """Create a product service."""
    return ProductService(session, request_id="test-request")


# ============================================================================
# Reference Data Fixtures
# ============================================================================


@pytest.fixture
async def color(session: AsyncSession) -> Attribute:
    """Create a Color attribute with Red and Blue values."""
    async with transactional(session):
        attribute = await AttributeRepository(session).create_attribute(
            "Color", values=["Red", "Blue"]
        )
    return attribute


@pytest.fixture
async def size(session: AsyncSession) -> Attribute:
    """Create a Size attribute with S and M values."""
    async with transactional(session):
        attribute = await AttributeRepository(session).create_attribute(
            "Size", values=["S", "M"]
        )
    return attribute


@pytest.fixture
async def category(session: AsyncSession) -> Category:
    """Create a Kitchen category."""
    async with transactional(session):
        category = await CategoryRepository(session).create_category(
            "Kitchen", description="Cookware and tableware"
        )
    return category


# ============================================================================
# Client Fixtures
# ============================================================================


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Create an API client backed by the test database."""

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
