from __future__ import annotations

import logging
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from registration_intake.app.core.env import get_env
from registration_intake.app.core.logging import setup_logging
from registration_intake.app.settings import (
    AppSettings,
    RateLimitSettings,
    UploadSettings,
    get_app_settings,
    get_rate_limit_settings,
    get_upload_settings,
)
from registration_intake.db.integration import attach_db
from registration_intake.db.settings import DBSettings
from registration_intake.files.consistency import attach_consistency_job
from registration_intake.uploads.naming import ensure_dir
from registration_intake.uploads.policy import POLICIES

from .errors import register_error_handlers
from .health import router as health_router
from .middleware import (
    AccessLogMiddleware,
    BodyReadTimeoutMiddleware,
    CatchAllExceptionMiddleware,
    HandlerTimeoutMiddleware,
    RequestSizeLimitMiddleware,
)
from .ratelimit import SlidingWindowRateLimiter, api_rate_limit
from .routers import register_all_routers

logger = logging.getLogger(__name__)


def _prepare_upload_root(root: Path) -> None:
    ensure_dir(root)
    for policy in POLICIES.values():
        ensure_dir(root / policy.folder)


def create_app(
    *,
    app_settings: AppSettings | None = None,
    upload_settings: UploadSettings | None = None,
    rate_limit_settings: RateLimitSettings | None = None,
    db_settings: DBSettings | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the intake API.

    Settings not passed explicitly come from the environment. Rate limiters are
    created here, once per app, and reached by the routes through ``app.state``.
    """
    if configure_logging:
        setup_logging()

    app_settings = app_settings or get_app_settings()
    upload_settings = upload_settings or get_upload_settings()
    rate_limit_settings = rate_limit_settings or get_rate_limit_settings()

    app = FastAPI(title=app_settings.name, version=app_settings.version)
    app.state.app_settings = app_settings
    app.state.upload_settings = upload_settings

    if rate_limit_settings.enabled:
        app.state.api_rate_limiter = SlidingWindowRateLimiter(
            rate_limit_settings.limit,
            rate_limit_settings.window_seconds,
            max_keys=rate_limit_settings.max_keys,
        )
        app.state.registration_rate_limiter = SlidingWindowRateLimiter(
            rate_limit_settings.registration_limit,
            rate_limit_settings.registration_window_seconds,
            max_keys=rate_limit_settings.max_keys,
        )

    # Added innermost first.
    app.add_middleware(BodyReadTimeoutMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=upload_settings.max_request_bytes)
    app.add_middleware(HandlerTimeoutMiddleware)
    app.add_middleware(CatchAllExceptionMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    attach_db(app, db_settings)
    if upload_settings.reconcile_interval_seconds > 0:
        attach_consistency_job(app, upload_settings.path, upload_settings.reconcile_interval_seconds)

    app.include_router(health_router)
    register_all_routers(
        app,
        base_package="registration_intake.api.routers",
        prefix="/api",
        dependencies=[Depends(api_rate_limit)],
    )

    _prepare_upload_root(upload_settings.path)
    app.mount("/uploads", StaticFiles(directory=upload_settings.path), name="uploads")

    logger.info(
        f"{app_settings.version} version of {app_settings.name} initialized [env: {get_env().value}]"
    )
    return app


__all__ = ["create_app"]
