"""
Database Connection and Session Management

Provides the async SQLAlchemy 2.0 engine and session factory. Both are
created once at startup (API lifespan or worker entry point) and handed
to the booking repository; nothing opens connections at import time.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.models.database import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and session factory for one process."""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.database_url
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=settings.debug if echo is None else echo,
            pool_pre_ping=True,
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for a unit of work.

        Commits on success, rolls back on exception, always closes.

        Usage:
            async with db.session() as session:
                result = await session.execute(select(Tenant))
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """
        Create all database tables.

        WARNING: development only. Use migrations in production.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()

    async def check_health(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
