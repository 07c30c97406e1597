"""Database engine and session management for the PostgreSQL store.

The engine is created on first use, so a service running with
``storage_backend = "memory"`` never opens a connection pool.
"""
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from booking_service.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def uses_database() -> bool:
    return settings.storage_backend != "memory"


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    Commits belong to the repositories (``atomic()`` and the chat writes);
    here an error only rolls back whatever is still open.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the tables; a no-op on the in-memory backend."""
    if not uses_database():
        logger.info("Using in-memory storage, skipping database init")
        return

    # Importing the ORM models registers their tables on Base.metadata.
    from booking_service.infrastructure import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    logger.info("Closing database connections")
    await _engine.dispose()
    _engine = None
    _session_factory = None
