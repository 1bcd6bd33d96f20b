from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy.ext.asyncio import create_async_engine

from easytasks.config import settings
from easytasks.models import Base

target_metadata = Base.metadata


def run_migrations_offline() -> None:
  context.configure(
    url=settings.migration_database_url(),
    target_metadata=target_metadata,
    literal_binds=True,
    dialect_opts={"paramstyle": "named"},
  )
  with context.begin_transaction():
    context.run_migrations()


def _run_sync(connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata)
  with context.begin_transaction():
    context.run_migrations()


async def run_migrations_online() -> None:
  # Migrations go through the direct URL when one is set; the app uses the pooled one.
  engine = create_async_engine(settings.migration_database_url())
  async with engine.connect() as connection:
    await connection.run_sync(_run_sync)
  await engine.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_migrations_online())
