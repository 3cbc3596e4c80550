"""Async database engine and request transactions.

Each API request runs in one transaction opened by get_db(): committed
when the endpoint returns, rolled back when it raises. Services whose
follow-up work must only see durable state (notification emails, the
platform configuration cache) commit themselves before that work; the
closing commit then has nothing left to write.
"""

import logging
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from portal.core.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def transaction(
    session_factory: Callable[[], AsyncSession] = async_session_factory,
) -> AsyncIterator[AsyncSession]:
    """Open a session as one unit of work.

    Args:
        session_factory: Factory for the session (the app engine by default).

    Yields:
        The session. Committed on normal exit; rolled back and re-raised
        on any exception.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            logger.debug("Rolling back transaction: %s", type(exc).__name__)
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides the request's database session."""
    async with transaction() as session:
        yield session
