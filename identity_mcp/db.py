"""
Database engine and session factory.

Uses SQLAlchemy's asyncio extension. Requests that find the connection pool
exhausted wait for a connection rather than failing.
"""

import ssl
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from loguru import logger

from identity_mcp.models import Base


def ssl_connect_args(ssl_verify: Optional[bool]) -> dict:
    """asyncpg connect_args for the configured TLS mode."""
    if ssl_verify is None:
        return {}

    context = ssl.create_default_context()
    if not ssl_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return {"ssl": context}


def create_engine(
    database_url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    ssl_verify: Optional[bool] = None,
) -> AsyncEngine:
    """Create the async engine. SQLite URLs keep the dialect's default pool and no TLS."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args=ssl_connect_args(ssl_verify),
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Loaded users are handed to request handlers after the session closes
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_database(engine: AsyncEngine) -> None:
    """Create missing tables and check connectivity."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))
    logger.info("✅ Database connection established.")


async def close_database(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("Database pool closed")
