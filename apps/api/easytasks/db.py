from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from easytasks.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def ping_direct() -> None:
  """Open a one-off connection on the direct URL (falls back to the pooled one)."""
  direct = create_async_engine(settings.migration_database_url())
  try:
    async with direct.connect() as conn:
      await conn.execute(text("SELECT 1"))
  finally:
    await direct.dispose()
