"""
Database session management.

The engine and session factory are built once from Settings at startup and
stored on the FastAPI application state; request handlers receive a session
through the get_db dependency.
"""
from collections.abc import AsyncGenerator

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ecomarket.core.config import Settings

logger = structlog.get_logger()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Pool tuning and server-side timeouts only apply to PostgreSQL; SQLite
    (used by tests and local runs) gets a plain engine.
    """
    url = settings.database_url_computed
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)

    return create_async_engine(
        url,
        echo=settings.api_debug,
        pool_pre_ping=True,  # Verify connections before using them
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=1800,
        pool_timeout=20,
        connect_args={
            "server_settings": {
                "statement_timeout": "25000",  # 25 second query timeout (in milliseconds)
                "idle_in_transaction_session_timeout": "300000",
                "application_name": "ecomarket_api",
            },
            "command_timeout": 25,
        },
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an async database session.

    Services commit their own transaction boundaries; anything left pending
    when the request finishes is rolled back.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_maker: async_sessionmaker[AsyncSession] = request.app.state.session_maker
    async with session_maker() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(
                "Database session error",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        else:
            if session.in_transaction():
                await session.rollback()
