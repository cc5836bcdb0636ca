"""
Database connection module.
Provides async SQLAlchemy engine, session factory, and Redis client.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from harvester.crawler.errors import ConfigurationError
from harvester.utils.config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_redis_client: aioredis.Redis | None = None


def _build_database_url() -> str:
    settings = get_settings()
    if not settings.db_password:
        raise ConfigurationError(
            "DB_PASSWORD is not set. Set DB_PASSWORD in the environment or .env file."
        )
    return settings.database_url


def get_engine() -> AsyncEngine:
    """Return the singleton async engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            _build_database_url(),
            echo=get_settings().db_echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the singleton session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with automatic commit/rollback."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def get_redis() -> aioredis.Redis:
    """Return the singleton async Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.Redis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def init_db() -> None:
    """Verify database and Redis connectivity, then create missing tables."""
    from harvester.db.models import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        await conn.run_sync(Base.metadata.create_all)
    await get_redis().ping()


async def close_db() -> None:
    """Dispose engine and close Redis on shutdown."""
    global _engine, _session_factory, _redis_client
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
