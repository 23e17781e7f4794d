"""
Root conftest for registration-intake tests.

Provides:
1. Marker registration and path-based auto-marking
2. Database fixtures (in-memory SQLite, unit of work)
3. A fully wired application over a temp SQLite file and temp upload root
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from starlette.testclient import TestClient

from registration_intake.api import create_app
from registration_intake.app.settings import AppSettings, RateLimitSettings, UploadSettings
from registration_intake.db.engine import DBEngine
from registration_intake.db.settings import DBSettings
from registration_intake.db.uow import UnitOfWork
from registration_intake.registrations import models  # noqa: F401  (registers the table)
from registration_intake.registrations.repository import RegistrationRepository

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    for item in items:
        norm = str(item.fspath).replace("\\", "/")
        if "/tests/api/" in norm:
            item.add_marker(pytest.mark.api)
        if "rate_limit" in norm or "ratelimit" in norm:
            item.add_marker(pytest.mark.ratelimit)
        if "upload" in norm or "parser" in norm or "pipeline" in norm:
            item.add_marker(pytest.mark.uploads)


def pytest_configure(config):
    for name, desc in [
        ("uploads", "Multipart parsing, upload policy and file storage"),
        ("ratelimit", "Rate limiting and abuse protection tests"),
        ("api", "Tests that drive the full application over HTTP"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _test_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest_asyncio.fixture
async def db_engine() -> AsyncIterator[DBEngine]:
    engine = DBEngine(DBSettings(database_url="sqlite+aiosqlite:///:memory:"))
    await engine.create_all()
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def uow(db_engine: DBEngine) -> AsyncIterator[UnitOfWork]:
    async with UnitOfWork(db_engine) as unit:
        yield unit


@pytest.fixture
def repo(uow: UnitOfWork) -> RegistrationRepository:
    assert uow.session is not None
    return RegistrationRepository(uow.session)


# =============================================================================
# APPLICATION FIXTURES
# =============================================================================


@pytest.fixture
def upload_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


def build_app(
    tmp_path: Path,
    upload_root: Path,
    *,
    rate_limits: RateLimitSettings | None = None,
) -> FastAPI:
    return create_app(
        app_settings=AppSettings(public_base_url="http://files.test"),
        upload_settings=UploadSettings(path=upload_root),
        rate_limit_settings=rate_limits or RateLimitSettings(enabled=False),
        db_settings=DBSettings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'intake.db'}",
            auto_create=True,
        ),
        configure_logging=False,
    )


@pytest.fixture
def app(tmp_path: Path, upload_root: Path) -> FastAPI:
    return build_app(tmp_path, upload_root)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c
