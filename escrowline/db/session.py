"""Async session manager.

One manager per process lifetime: the FastAPI lifespan builds it on startup
and disposes it on shutdown, Celery tasks build one per run. Nothing here is
created at import time.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from escrowline.common.logging import get_logger
from escrowline.config import settings

logger = get_logger("db.session")


class DatabaseSessionManager:
    def __init__(self, database_url: str, **engine_kwargs) -> None:
        if not database_url.startswith("sqlite"):
            engine_kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
            engine_kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
            engine_kwargs.setdefault("pool_recycle", 3600)
        self.engine = create_async_engine(database_url, pool_pre_ping=True, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that is rolled back if the block raises.

        Callers commit explicitly; the manager never commits on their behalf.
        """
        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return False

    async def close(self) -> None:
        await self.engine.dispose()


@asynccontextmanager
async def open_session_manager(database_url: str | None = None) -> AsyncGenerator[DatabaseSessionManager, None]:
    """Scoped manager for short-lived processes such as Celery tasks and scripts."""
    manager = DatabaseSessionManager(database_url or settings.DATABASE_URL)
    try:
        yield manager
    finally:
        await manager.close()
