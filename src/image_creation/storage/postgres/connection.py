"""Async engine and session handling for the relational read store.

:class:`Database` owns one engine plus its session factory. The container
builds it once and passes it to ``SqlReadModelStore``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

logger = logging.getLogger(__name__)

_POOL_RECYCLE_SECONDS = 1800


def build_engine(url: str, *, pool_size: int = 5, echo: bool = False) -> AsyncEngine:
    """Return an :class:`AsyncEngine` for *url*.

    ``postgresql+asyncpg://`` URLs get a sized pool that recycles idle
    connections. ``sqlite+aiosqlite://`` URLs (tests, local runs) keep
    SQLAlchemy's own pool, which rejects sizing options.
    """
    options: dict[str, Any] = {"echo": echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=pool_size,
            max_overflow=pool_size * 2,
            pool_recycle=_POOL_RECYCLE_SECONDS,
            pool_pre_ping=True,
        )
    engine = create_async_engine(url, **options)
    logger.info("Read store engine ready for %s", url.split("@")[-1])
    return engine


class Database:
    """Owns an :class:`AsyncEngine` and hands out scoped sessions.

    Usage::

        db = Database(settings.postgres_url)
        await db.connect(create_tables=True)
        async with db.session() as session:
            await ImageRepo(session).upsert(record)
        await db.dispose()
    """

    def __init__(self, url: str, *, echo: bool = False, pool_size: int = 5) -> None:
        self._url = url
        self._echo = echo
        self._pool_size = pool_size
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def connect(self, *, create_tables: bool = False) -> None:
        """Create the engine and session factory.

        Args:
            create_tables: If ``True``, run ``CREATE TABLE IF NOT EXISTS`` for
                all ORM models (useful for dev/test).
        """
        if self._engine is not None:
            return
        self._engine = build_engine(
            self._url, pool_size=self._pool_size, echo=self._echo,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        if create_tables:
            await self.create_all()

    async def create_all(self) -> None:
        """Create all tables defined in the ORM metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created / verified.")

    async def dispose(self) -> None:
        """Dispose of the engine and release all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Engine disposed.")
            self._engine = None
            self._session_factory = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Engine not initialised. Call connect() first.")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield an async session scoped to the caller's block.

        The session is committed on successful exit and rolled back on
        exception. It is always closed afterwards.
        """
        if self._session_factory is None:
            raise RuntimeError(
                "Session factory not initialised. Call connect() first."
            )

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
