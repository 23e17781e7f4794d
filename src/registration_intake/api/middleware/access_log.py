from __future__ import annotations

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("registration_intake.access")


class AccessLogMiddleware:
    """One log line per HTTP request, with the fields JsonFormatter lifts into ``http``."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500

        async def _send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, _send)
        finally:
            headers = dict(scope.get("headers") or [])
            client = scope.get("client")
            duration_ms = round((time.perf_counter() - started) * 1000, 1)
            path = scope.get("path", "")
            logger.info(
                "%s %s -> %s (%.1f ms)",
                scope.get("method"), path, status_code, duration_ms,
                extra={
                    "http_method": scope.get("method"),
                    "path": path,
                    "status_code": status_code,
                    "client_ip": client[0] if client else None,
                    "user_agent": headers.get(b"user-agent", b"").decode("latin-1") or None,
                    "duration_ms": duration_ms,
                    "request_id": headers.get(b"x-request-id", b"").decode("latin-1") or None,
                },
            )
