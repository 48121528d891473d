"""Database engine, session factory, and declarative base.

All CRM tables live in one schema; tenant isolation is enforced by the
access-control layer (crm.auth), not by the database.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from crm.auth import permission_cache
from crm.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; commit when the request succeeds, roll back otherwise.

    Permission-cache invalidations queued by grant writes run again once
    the commit has succeeded.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            permission_cache.discard_pending(session)
            raise
        await permission_cache.invalidate_pending(session)


async def create_all() -> None:
    """Create every table registered on Base (dev / test bootstrap)."""
    import crm.models  # noqa: F401  registers all models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
