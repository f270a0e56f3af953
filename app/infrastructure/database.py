"""Database configuration and session management.

Provides async SQLAlchemy engine, session factory and the
transaction scope used by every multi-statement catalog write.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.infrastructure.config import settings

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession for database operations.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block of reads and writes as a single transaction.

    Everything executed on ``session`` inside the block commits together
    when the block exits normally. Any exception, including task
    cancellation, rolls the whole unit back before propagating.

    Example usage:
        async with transactional(session):
            await repo.create_restock(...)
            await repo.update_product_stock(...)

    Args:
        session: Session acting as the transaction scope.

    Yields:
        The same session.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        # cancellation included
        await session.rollback()
        raise
