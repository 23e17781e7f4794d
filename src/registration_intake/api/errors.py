from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from registration_intake.app.core.env import Env, get_env
from registration_intake.exceptions import IntakeError, RateLimitedError
from registration_intake.registrations.schemas import error_messages

logger = logging.getLogger(__name__)


def envelope(message: str, *, error: str | None = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message}
    if error:
        payload["error"] = error
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


def error_response(
    status: int, message: str, *, error: str | None = None, headers: dict[str, str] | None = None, **extra: Any
) -> JSONResponse:
    return JSONResponse(status_code=status, content=envelope(message, error=error, **extra), headers=headers)


def internal_error_response(exc: BaseException) -> JSONResponse:
    """500 envelope; the exception text is only exposed outside production."""
    detail = None if get_env() is Env.PROD else f"{type(exc).__name__}: {exc}"
    return error_response(500, "Internal server error", error="INTERNAL_ERROR", detail=detail)


async def _intake_error(request: Request, exc: IntakeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path} ({exc.status_code}): {exc.message}")
    else:
        logger.info(
            "%s on %s: %s", exc.code, request.url.path, exc.message,
            extra={"http_method": request.method, "path": request.url.path, "status_code": exc.status_code},
        )
    payload = exc.to_payload()
    if get_env() is Env.PROD:
        payload.pop("debug", None)
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitedError) else None
    return JSONResponse(status_code=exc.status_code, content=payload, headers=headers)


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        400, "Validation failed", error="VALIDATION_ERROR", errors=error_messages(exc.errors())
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    else:
        message = str(exc.detail)
    return error_response(
        exc.status_code, message, error=f"HTTP_{exc.status_code}", headers=getattr(exc, "headers", None)
    )


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{type(exc).__name__} on {request.url.path} (500): {exc}", exc_info=exc)
    return internal_error_response(exc)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IntakeError, _intake_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled)


__all__ = ["envelope", "error_response", "internal_error_response", "register_error_handlers"]
