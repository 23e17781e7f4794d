"""
Error taxonomy for the intake service.

Every error carries the HTTP status and machine code it is rendered with, plus
any extra envelope fields (``errors``, ``field``, ``missingFiles``...). The
FastAPI handlers in :mod:`registration_intake.api.errors` turn these into the
``{success, message, error, ...}`` envelope.
"""

from __future__ import annotations

from typing import Any


class IntakeError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.extra: dict[str, Any] = {k: v for k, v in extra.items() if v is not None}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message, "error": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(IntakeError):
    """Malformed, missing or out-of-policy input."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, errors: list[str] | None = None, **extra: Any) -> None:
        super().__init__(message, errors=errors, **extra)
        self.errors = list(errors or [])


class DuplicateError(IntakeError):
    """A unique field (email, phone, identity number) is already registered."""

    status_code = 400
    code = "DUPLICATE"

    def __init__(self, message: str, *, field: str, value: Any = None) -> None:
        super().__init__(message, field=field, duplicateValue=value)
        self.field = field
        self.value = value


class NotFoundError(IntakeError):
    status_code = 404
    code = "NOT_FOUND"


class UploadPolicyError(IntakeError):
    """An uploaded part broke a size, count, type or name rule; ``code`` names the rule."""

    status_code = 400
    code = "UPLOAD_ERROR"


class FileSystemError(IntakeError):
    status_code = 500
    code = "FILE_SYSTEM_ERROR"


class IntegrityError(IntakeError):
    """A unique index fired on a column the service does not know about."""

    status_code = 500
    code = "ORPHANED_INDEX"


class RateLimitedError(IntakeError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message, retryAfter=retry_after)
        self.retry_after = retry_after
