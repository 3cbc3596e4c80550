"""Alembic environment configuration.

The URL comes from portal.core.config (DATABASE_* variables) and the
metadata from the ORM models. Online migrations run over the asyncpg
engine so no second (sync) driver is needed.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from portal.core.config import settings
from portal.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure_context(connection: Connection | None = None) -> None:
    """Shared Alembic options for offline and online runs."""
    common_kwargs = dict(
        target_metadata=target_metadata,
        version_table="alembic_version",
        compare_type=True,
        compare_server_default=True,
    )

    if connection is None:
        context.configure(
            url=settings.database_url,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            **common_kwargs,
        )
    else:
        context.configure(connection=connection, **common_kwargs)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL without connecting)."""
    _configure_context(connection=None)
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    _configure_context(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_async_engine(settings.database_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(_run_with_connection)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
