"""
Async SQLAlchemy engine and session handle.

One Database instance is created per process (API lifespan, RQ job,
scheduler entry point) and passed explicitly to whatever needs sessions.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) in tests.
"""

from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Database:
    """Owns the async engine and the session factory."""

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 5,
    ):
        self.url = url
        if url.startswith("sqlite"):
            # Single shared connection so in-memory databases survive across sessions
            self.engine: AsyncEngine = create_async_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
            )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )
        logger.info("database_initialized", backend=self.engine.dialect.name)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.DB_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )

    async def create_all(self) -> None:
        """Create all tables. Used by tests and local development."""
        # Import for side effect: registers the models on Base.metadata
        from landman.models import tables  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> Optional[str]:
        """Return None if the database answers, else the error text."""
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return None
        except Exception as e:
            return str(e)[:200]

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("database_closed")
