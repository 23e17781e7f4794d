from __future__ import annotations

import asyncio
import json

import pytest
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.testclient import TestClient

from registration_intake.api.middleware import (
    BodyReadTimeoutMiddleware,
    CatchAllExceptionMiddleware,
    HandlerTimeoutMiddleware,
    RequestSizeLimitMiddleware,
)


class Recorder:
    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    @property
    def status(self) -> int:
        return next(m["status"] for m in self.messages if m["type"] == "http.response.start")

    @property
    def json(self):
        body = b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")
        return json.loads(body)


def _scope(path: str = "/slow") -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "headers": [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }


async def _echo_body(scope, receive, send):
    body = await Request(scope, receive).body()
    await JSONResponse({"received": len(body)})(scope, receive, send)


@pytest.mark.asyncio
async def test_handler_timeout_returns_504():
    async def slow_app(scope, receive, send):
        await asyncio.sleep(5)

    sent = Recorder()
    mw = HandlerTimeoutMiddleware(slow_app, timeout_seconds=0.05)
    await mw(_scope(), None, sent)

    assert sent.status == 504
    assert sent.json == {
        "success": False,
        "message": "The request took too long to complete.",
        "error": "GATEWAY_TIMEOUT",
    }


@pytest.mark.asyncio
async def test_stalled_body_returns_408():
    async def stalled_receive():
        await asyncio.sleep(5)
        return {"type": "http.request", "body": b"", "more_body": False}

    sent = Recorder()
    mw = BodyReadTimeoutMiddleware(_echo_body, timeout_seconds=0.05)
    await mw(_scope(), stalled_receive, sent)

    assert sent.status == 408
    assert sent.json["error"] == "REQUEST_TIMEOUT"


@pytest.mark.asyncio
async def test_body_arriving_in_time_passes_through():
    chunks = [
        {"type": "http.request", "body": b"abc", "more_body": True},
        {"type": "http.request", "body": b"def", "more_body": False},
    ]

    async def receive():
        return chunks.pop(0)

    sent = Recorder()
    await BodyReadTimeoutMiddleware(_echo_body, timeout_seconds=1)(_scope(), receive, sent)

    assert sent.status == 200
    assert sent.json == {"received": 6}


def _app_with(middleware, **options) -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        return {"received": len(await request.body())}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    app.add_middleware(middleware, **options)
    return app


def test_declared_oversize_body_is_rejected():
    client = TestClient(_app_with(RequestSizeLimitMiddleware, max_bytes=16))

    ok = client.post("/echo", content=b"x" * 16)
    assert ok.status_code == 200

    res = client.post("/echo", content=b"x" * 17)
    assert res.status_code == 413
    assert res.json() == {
        "success": False,
        "message": "Request body exceeds allowed size.",
        "error": "PAYLOAD_TOO_LARGE",
        "maxBytes": 16,
    }


def test_unhandled_exception_becomes_envelope():
    client = TestClient(_app_with(CatchAllExceptionMiddleware), raise_server_exceptions=False)
    res = client.get("/boom")

    assert res.status_code == 500
    body = res.json()
    assert body["success"] is False
    assert body["error"] == "INTERNAL_ERROR"
    assert body["message"] == "Internal server error"
