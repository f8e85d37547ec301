"""Database engine and session management.

Transaction Guarantees:
- Each store operation gets its own session
- All statements within an operation are atomic
- On any exception, the entire transaction is rolled back
- Sessions are properly closed after each operation

Nothing here is process-global: the engine and session factory are built
explicitly and handed to whoever needs them.
"""

import logging
import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings

logger = logging.getLogger(__name__)


def _is_cloud_database(url: str) -> bool:
    return "supabase" in url or "neon" in url or "pooler" in url


def create_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine for the configured database URL."""
    url = settings.database_url_async
    logger.info(f"Database URL (masked): {url[:30]}...")

    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False},
        )

        # SQLite only honours ON DELETE CASCADE with foreign keys enabled
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    connect_args = {}
    if settings.environment == "production" or _is_cloud_database(url):
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context
        # Disable prepared statements for pgbouncer compatibility
        connect_args["prepared_statement_cache_size"] = 0
        connect_args["statement_cache_size"] = 0
        logger.info("Using SSL for database connection with pgbouncer compatibility")

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=300,
        pool_timeout=30,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory - creates new sessions for each operation."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Transactional session: commit on success, rollback on any error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with engine.begin() as conn:
        # In production, use migrations instead
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
