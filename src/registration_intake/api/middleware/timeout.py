from __future__ import annotations

import asyncio
import logging
import os

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from registration_intake.api.errors import error_response
from registration_intake.app.core.env import pick

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


REQUEST_BODY_TIMEOUT_SECONDS: int = pick(
    prod=_env_int("REQUEST_BODY_TIMEOUT_SECONDS", 15),
    nonprod=_env_int("REQUEST_BODY_TIMEOUT_SECONDS", 30),
)
REQUEST_TIMEOUT_SECONDS: int = pick(
    prod=_env_int("REQUEST_TIMEOUT_SECONDS", 30),
    nonprod=_env_int("REQUEST_TIMEOUT_SECONDS", 60),
)


class _BodyReadTimeout(Exception):
    pass


class _ResponseTracker:
    """Remembers whether the response has started so no second response is sent."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.started = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
        await self._send(message)


class HandlerTimeoutMiddleware:
    """
    Caps total handler execution time. If exceeded before the response starts,
    returns a 504 envelope.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: int | None = None) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds or REQUEST_TIMEOUT_SECONDS

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        tracker = _ResponseTracker(send)
        try:
            await asyncio.wait_for(self.app(scope, receive, tracker), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Handler timeout after %ss on %s", self.timeout_seconds, scope.get("path"))
            if tracker.started:
                raise
            resp = error_response(
                504, "The request took too long to complete.", error="GATEWAY_TIMEOUT"
            )
            await resp(scope, receive, send)


class BodyReadTimeoutMiddleware:
    """
    Enforces a timeout while reading the request body to mitigate slowloris.
    If the body read makes no progress within the timeout, returns a 408 envelope.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: int | None = None) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds or REQUEST_BODY_TIMEOUT_SECONDS

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        body_complete = False

        async def _timeout_receive() -> Message:
            nonlocal body_complete
            if body_complete:
                return await receive()
            try:
                message = await asyncio.wait_for(receive(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                raise _BodyReadTimeout() from None
            if message.get("type") == "http.request" and not message.get("more_body", False):
                body_complete = True
            return message

        tracker = _ResponseTracker(send)
        try:
            await self.app(scope, _timeout_receive, tracker)
        except _BodyReadTimeout:
            logger.warning("Body read timeout after %ss on %s", self.timeout_seconds, scope.get("path"))
            if tracker.started:
                raise
            resp = error_response(408, "Timed out while reading request body.", error="REQUEST_TIMEOUT")
            await resp(scope, receive, send)
