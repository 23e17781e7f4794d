from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware

from registration_intake.api.errors import error_response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length exceeds ``max_bytes``."""

    def __init__(self, app, max_bytes: int = 10 * 1024 * 1024):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request, call_next):
        length = request.headers.get("content-length")
        try:
            size = int(length) if length is not None else None
        except ValueError:
            size = None
        if size is not None and size > self.max_bytes:
            return error_response(
                413,
                "Request body exceeds allowed size.",
                error="PAYLOAD_TOO_LARGE",
                maxBytes=self.max_bytes,
            )
        return await call_next(request)
