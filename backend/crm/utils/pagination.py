"""Offset pagination over an already-scoped select."""

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(db: AsyncSession, stmt: Select, limit: int, offset: int) -> tuple[list, int]:
    """Return (rows, total) for `stmt`; the count is taken over the same filtered query."""
    total = await db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    result = await db.execute(stmt.limit(limit).offset(offset))
    return list(result.scalars().all()), total
