from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from fastapi import Depends, FastAPI, Request

from ..engine import DBEngine
from ..settings import DBSettings, get_db_settings
from ..uow import UnitOfWork

logger = logging.getLogger(__name__)


def attach_db(app: FastAPI, settings: DBSettings | None = None) -> DBEngine:
    """
    Bind a :class:`DBEngine` to the app's lifespan.

    The engine is published on ``app.state.db_engine`` at startup, tables are
    created when ``auto_create`` is set, and the pool is disposed on shutdown.
    Any lifespan already installed runs inside this one.
    """
    settings = settings or get_db_settings()
    engine = DBEngine(settings)
    existing = getattr(app.router, "lifespan_context", None)

    @asynccontextmanager
    async def composed_lifespan(_app: FastAPI):
        _app.state.db_engine = engine
        try:
            logger.info(
                "DB attached: url=%s driver=%s",
                engine.url.render_as_string(hide_password=True),
                engine.url.get_backend_name(),
            )
            if settings.auto_create:
                await engine.create_all()
                logger.info("DB tables ensured (auto_create=True)")
            if existing:
                async with existing(_app):
                    yield
            else:
                yield
        finally:
            await engine.dispose()

    app.router.lifespan_context = composed_lifespan
    return engine


def get_engine(request: Request) -> DBEngine:
    return request.app.state.db_engine


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    async with UnitOfWork(get_engine(request)) as uow:
        yield uow


EngineDep = Annotated[DBEngine, Depends(get_engine)]
UoWDep = Annotated[UnitOfWork, Depends(get_uow)]
