"""
Async SQLAlchemy database engine and session management.
Uses asyncpg for PostgreSQL in production; aiosqlite works for tests and single-node installs.
CRITICAL: expire_on_commit=False prevents lazy-loading issues in async contexts.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from paybridge.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build the async engine. Pool sizing only applies to server databases."""
    kwargs: dict = {"echo": settings.app_env == "development" and settings.log_level.upper() == "DEBUG"}
    if ":memory:" in settings.database_url:
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    elif not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
        kwargs["pool_pre_ping"] = True
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """
    Create any missing tables. Production schemas are managed by Alembic;
    this keeps SQLite deployments and local runs working without a migration step.
    """
    import paybridge.models  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema verified")


async def dispose_engine(engine: Optional[AsyncEngine]) -> None:
    if engine is not None:
        await engine.dispose()
