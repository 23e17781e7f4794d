from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .base import Base
from .settings import DBSettings


def engine_options(url: URL, settings: DBSettings) -> dict[str, Any]:
    """
    Pool options per backend.

    SQLite gets no pool sizing (a file database, or one shared connection for
    ``:memory:``); server databases get the configured pool.
    """
    options: dict[str, Any] = {"echo": settings.echo, "pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options

    options.update(
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_recycle=settings.pool_recycle or 1800,
        pool_timeout=settings.pool_timeout,
    )
    if url.get_driver_name() == "asyncpg":
        options["connect_args"] = {"statement_cache_size": settings.statement_cache_size}
    return options


class DBEngine:
    """Async engine plus the session factory the unit of work draws from."""

    def __init__(self, settings: DBSettings):
        url = make_url(settings.resolved_database_url)
        self._engine: AsyncEngine = create_async_engine(url, **engine_options(url, settings))
        # rows stay readable after commit; responses are rendered from them
        self._sessions = async_sessionmaker(bind=self._engine, expire_on_commit=False)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def url(self) -> URL:
        return self._engine.url

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        sess = self._sessions()
        try:
            yield sess
        finally:
            await sess.close()

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
