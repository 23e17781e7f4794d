from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from .engine import DBEngine


class UnitOfWork:
    """
    One session per request or job.

    Leaving the block commits (unless ``commit_on_success`` is off); an
    exception rolls back. Services that must know the write landed before
    touching the filesystem call :meth:`commit` themselves.
    """

    def __init__(self, engine: DBEngine, *, commit_on_success: bool = True):
        self._engine = engine
        self._commit_on_success = commit_on_success
        self.session: AsyncSession | None = None
        self._session_cm = None

    async def __aenter__(self) -> "UnitOfWork":
        self._session_cm = self._engine.session()
        self.session = await self._session_cm.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc_type is None and self._commit_on_success:
                await self.session.commit()
            else:
                await self.session.rollback()
        finally:
            await self._session_cm.__aexit__(exc_type, exc, tb)

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()
