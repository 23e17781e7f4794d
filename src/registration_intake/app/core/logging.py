from __future__ import annotations

import json
import logging
import os
import re
from logging.config import dictConfig
from traceback import format_exception

from registration_intake.app.core.env import IS_PROD

# 12 consecutive digits, optionally grouped by four: the shape of an identity number
_IDENTITY_NUMBER_RE = re.compile(r"(?<!\d)\d{4}[ -]?\d{4}[ -]?(\d{4})(?!\d)")

_HTTP_FIELDS = {
    "method": "http_method",
    "path": "path",
    "status": "status_code",
    "client_ip": "client_ip",
    "user_agent": "user_agent",
    "duration_ms": "duration_ms",
}


def mask_identity_numbers(text: str) -> str:
    return _IDENTITY_NUMBER_RE.sub(lambda m: f"XXXX-XXXX-{m.group(1)}", text)


class RedactIdentityFilter(logging.Filter):
    """Rewrites the rendered message so identity numbers only show their last four digits."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_identity_numbers(message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; HTTP and registration context only when the record carries it."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }

        req_id = getattr(record, "request_id", None)
        if req_id is not None:
            payload["request_id"] = req_id

        http_ctx = {
            key: getattr(record, attr)
            for key, attr in _HTTP_FIELDS.items()
            if getattr(record, attr, None) is not None
        }
        if http_ctx:
            payload["http"] = http_ctx

        registration_id = getattr(record, "registration_id", None)
        if registration_id is not None:
            payload["registration_id"] = str(registration_id)

        if record.exc_info and record.exc_info[0] is not None:
            stack = "".join(format_exception(*record.exc_info))
            max_stack = int(os.getenv("LOG_STACK_LIMIT", "4000"))
            payload["error"] = {
                "type": record.exc_info[0].__name__,
                "message": mask_identity_numbers(str(record.exc_info[1])),
                "stack": stack[:max_stack] + ("...(truncated)" if len(stack) > max_stack else ""),
            }

        return json.dumps(payload, ensure_ascii=False, default=str)


def _read_level() -> str:
    explicit = os.getenv("LOG_LEVEL")
    if explicit:
        return explicit.upper()
    return "INFO" if IS_PROD else "DEBUG"


def _read_format() -> str:
    fmt = os.getenv("LOG_FORMAT")
    if fmt:
        return fmt.lower()
    return "json" if IS_PROD else "plain"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure the root logger for the API, the CLI and migrations.

    Level comes from ``LOG_LEVEL`` (INFO in prod, DEBUG elsewhere), format from
    ``LOG_FORMAT`` (``json`` in prod, ``plain`` elsewhere).
    """
    level = (level or _read_level()).upper()
    fmt = (fmt or _read_format()).lower()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact": {"()": RedactIdentityFilter},
            },
            "formatters": {
                "plain": {
                    "format": "%(asctime)s %(levelname)-5s [pid:%(process)d] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                },
            },
            "handlers": {
                "stream": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "json" if fmt == "json" else "plain",
                    "filters": ["redact"],
                }
            },
            "root": {
                "level": level,
                "handlers": ["stream"],
            },
            # uvicorn loggers bubble up to the root handler; sqlalchemy stays quiet unless DB_ECHO
            "loggers": {
                "uvicorn": {"level": "INFO", "handlers": [], "propagate": True},
                "uvicorn.error": {"level": "INFO", "handlers": [], "propagate": True},
                "uvicorn.access": {"level": "WARNING", "handlers": [], "propagate": True},
                "sqlalchemy.engine": {"level": "WARNING", "handlers": [], "propagate": True},
                "aiosqlite": {"level": "WARNING", "handlers": [], "propagate": True},
                "python_multipart": {"level": "WARNING", "handlers": [], "propagate": True},
            },
        }
    )
