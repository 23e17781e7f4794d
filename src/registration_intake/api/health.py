from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from registration_intake.app.core.env import get_env
from registration_intake.db.health import db_healthcheck
from registration_intake.db.integration import EngineDep

from .deps import AppSettingsDep

router = APIRouter(tags=["internal"])


@router.get("/health")
async def health(settings: AppSettingsDep):
    return {
        "success": True,
        "message": "Server is running",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "environment": get_env().value,
        "version": settings.version,
    }


@router.get("/_db/health", include_in_schema=False)
async def db_health(engine: EngineDep, verbose: int = 0):
    async with engine.session() as s:
        ok = await db_healthcheck(s)
    if not verbose:
        return Response(status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE)
    url = engine.url
    return JSONResponse(
        status_code=200 if ok else 503,
        content={
            "ok": ok,
            "driver": url.get_backend_name(),
            "database": url.render_as_string(hide_password=True),
        },
    )
