"""
Database connection and session management.
Handles the SQLAlchemy async engine (PostgreSQL via asyncpg in production).
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import Optional
import logging

from app.config import settings

logger = logging.getLogger(__name__)


def create_engine(database_url: str) -> AsyncEngine:
    """Build an async engine for *database_url*."""
    return create_async_engine(
        database_url,
        echo=False,  # Set to True for SQL query logging
        future=True,
        pool_pre_ping=True,
        poolclass=NullPool,  # Use NullPool for better async compatibility
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by request handlers and background workflows alike."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = create_session_factory(engine)

# Base class for ORM models
Base = declarative_base()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database tables.
    Creates all tables defined in Base metadata.
    """
    target = bind or engine
    try:
        async with target.begin() as conn:
            # Import all models to ensure they're registered
            from app.models import database_models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created/verified")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise


async def close_db() -> None:
    """Close database connections gracefully."""
    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")
        raise
