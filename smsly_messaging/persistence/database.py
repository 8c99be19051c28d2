"""
Database Module
===============
Async engine and session factory for the SQL stores.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine as sa_create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from smsly_messaging.config import DatabaseConfig

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


# Global engine and session factory - initialized by create_async_engine()
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_async_engine(config: Optional[DatabaseConfig] = None, pool_pre_ping: bool = True) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Call this once during application startup.

    Args:
        config: Connection settings (defaults to DATABASE_URL)
        pool_pre_ping: Enable connection health checks (default: True)

    Returns:
        Configured AsyncEngine instance
    """
    global _engine, _async_session_factory

    config = config or DatabaseConfig()
    kwargs = {"echo": config.echo}
    # SQLite pools are not sized
    if not config.url.startswith("sqlite"):
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_pre_ping=pool_pre_ping,
        )

    _engine = sa_create_async_engine(config.url, **kwargs)
    _async_session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Database engine initialized", dialect=_engine.dialect.name)
    return _engine


def get_engine() -> AsyncEngine:
    """Get the current database engine."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call create_async_engine() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory the SQL stores are built on."""
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call create_async_engine() first.")
    return _async_session_factory


async def create_all() -> None:
    """Create every table. Intended for tests and local development."""
    from . import tables  # noqa: F401  registers the mappings on Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_engine() -> None:
    """Close the database engine. Call during application shutdown."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database engine closed")
