"""
Database connection and session management.

Engines and session factories are built explicitly at startup and passed
to the wallet store; nothing here holds a process-wide connection.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def create_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the wallet database.

    Args:
        db_url: Async database URL (``sqlite+aiosqlite://`` or ``postgresql+asyncpg://``)
        echo: Log emitted SQL

    Returns:
        AsyncEngine
    """
    if db_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        # An in-memory database only exists for the connection that made it
        if ":memory:" in db_url:
            return create_async_engine(
                db_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args=connect_args,
            )
        return create_async_engine(
            db_url,
            echo=echo,
            poolclass=NullPool,
            connect_args=connect_args,
        )

    return create_async_engine(
        db_url,
        echo=echo,
        poolclass=NullPool,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory the wallet store opens sessions from."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize the database by creating all tables.

    Args:
        engine: Engine to create the tables on
    """
    # Registers the wallet tables on Base.metadata
    from agentpay import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db(engine: AsyncEngine) -> None:
    """Close the database engine and cleanup connections."""
    await engine.dispose()
    logger.info("Database connections closed")
