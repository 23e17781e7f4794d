from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from registration_intake.cli import _alembic_config, app
from registration_intake.db.settings import get_db_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def test_init_db_creates_tables(tmp_path, database_url):
    result = runner.invoke(app, ["init-db", "--database-url", database_url])
    assert result.exit_code == 0, result.output
    assert "Tables created." in result.output
    assert (tmp_path / "cli.db").exists()


def test_reconcile_clean_tree(tmp_path, database_url):
    assert runner.invoke(app, ["init-db", "--database-url", database_url]).exit_code == 0
    uploads = tmp_path / "uploads"
    (uploads / "identity").mkdir(parents=True)

    result = runner.invoke(
        app,
        ["reconcile", "--upload-path", str(uploads), "--database-url", database_url, "--json"],
    )

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["referencedFiles"] == 0
    assert report["orphanedFiles"] == []


def test_reconcile_flags_orphans(tmp_path, database_url):
    assert runner.invoke(app, ["init-db", "--database-url", database_url]).exit_code == 0
    uploads = tmp_path / "uploads"
    (uploads / "signatures").mkdir(parents=True)
    (uploads / "signatures" / "stray.png").write_bytes(b"\x89PNG")

    result = runner.invoke(
        app,
        ["reconcile", "--upload-path", str(uploads), "--database-url", database_url, "--grace-seconds", "0"],
    )

    assert result.exit_code == 1
    assert "Orphaned files:   1" in result.output
    assert "stray.png" in result.output


PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("postgres://u:p@db:5432/intake", "postgresql+asyncpg://u:p@db:5432/intake"),
        ("postgresql://u:p@db:5432/intake", "postgresql+asyncpg://u:p@db:5432/intake"),
        ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ],
)
def test_alembic_config_normalizes_env_url(monkeypatch, raw, expected):
    monkeypatch.delenv("DB_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", raw)
    get_db_settings.cache_clear()
    try:
        cfg = _alembic_config(PROJECT_ROOT, None)
    finally:
        get_db_settings.cache_clear()
    assert cfg.get_main_option("sqlalchemy.url") == expected


def test_alembic_config_normalizes_option_url():
    cfg = _alembic_config(PROJECT_ROOT, "postgres://u:p@db/intake")
    assert cfg.get_main_option("sqlalchemy.url") == "postgresql+asyncpg://u:p@db/intake"
    assert cfg.get_main_option("script_location") == str(PROJECT_ROOT / "migrations")
