"""
Database module for Funnel Insight.

Provides async SQLAlchemy database connection management and session handling.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import get_settings

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by services and request sessions."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database() -> None:
    """
    Initialize the database engine and session factory.

    Should be called during application startup.
    """
    global _engine, _async_session_factory

    settings = get_settings()

    if not settings.database_enabled:
        logger.info("Database is disabled, skipping initialization")
        return

    database_url = settings.database_url
    if not database_url:
        logger.warning("DATABASE_URL not configured, database features disabled")
        return

    logger.info("Initializing database connection...")

    _engine = create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.debug and settings.db_echo,
    )

    _async_session_factory = create_session_factory(_engine)

    logger.info("Database initialized successfully")


async def close_database() -> None:
    """
    Close the database connection.

    Should be called during application shutdown.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.info("Closing database connection...")
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the session factory for services that manage their own transactions.

    Raises:
        RuntimeError: If the database is not initialized
    """
    if _async_session_factory is None:
        raise RuntimeError(
            "Database not initialized. Call init_database() first or check DATABASE_URL."
        )
    return _async_session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
    session: AsyncSession | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Yield a session inside a transaction.

    When ``session`` is given the caller owns the transaction and it is
    yielded as-is; otherwise a new session is opened and committed on exit.
    """
    if session is not None:
        yield session
        return

    async with factory() as new_session, new_session.begin():
        yield new_session


def is_database_available() -> bool:
    """Check if database is available and initialized."""
    return _engine is not None and _async_session_factory is not None


# Export commonly used items
__all__ = [
    "init_database",
    "close_database",
    "create_session_factory",
    "get_session_factory",
    "session_scope",
    "is_database_available",
]
