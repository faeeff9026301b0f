"""
Database session dependency.
Yields an AsyncSession per request; commits on success, rolls back on error.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.base import AsyncSessionFactory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
