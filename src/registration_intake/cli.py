from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from alembic import command
from alembic.config import Config

from registration_intake.app.core.logging import setup_logging
from registration_intake.app.settings import get_upload_settings
from registration_intake.db.engine import DBEngine
from registration_intake.db.settings import DBSettings, get_db_settings
from registration_intake.files.consistency import run_once

app = typer.Typer(no_args_is_help=True, add_completion=False)

MIGRATIONS_DIR = "migrations"
ALEMBIC_INI = "alembic.ini"


def _db_settings(database_url: Optional[str]) -> DBSettings:
    return DBSettings(database_url=database_url) if database_url else get_db_settings()


def _alembic_config(project_root: Path, database_url: Optional[str]) -> Config:
    cfg = Config(str(project_root / ALEMBIC_INI))
    # same resolution as the app: --database-url, DB_DATABASE_URL, DATABASE_URL, local sqlite
    cfg.set_main_option("sqlalchemy.url", _db_settings(database_url).resolved_database_url)
    cfg.set_main_option("script_location", str(project_root / MIGRATIONS_DIR))
    # env.py configures app logging itself
    cfg.attributes["configure_logger"] = False
    return cfg


@app.command("serve")
def serve(
        host: str = typer.Option("0.0.0.0", envvar="HOST"),
        port: int = typer.Option(5000, envvar="PORT"),
        reload: bool = typer.Option(False, help="Restart on code changes (development only)"),
):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "registration_intake.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@app.command("init-db")
def init_db(
        database_url: Optional[str] = typer.Option(None, help="Override DATABASE_URL; defaults to env"),
):
    """Create all tables directly from the models (no migrations)."""
    setup_logging()

    async def _run() -> None:
        engine = DBEngine(_db_settings(database_url))
        try:
            await engine.create_all()
        finally:
            await engine.dispose()

    asyncio.run(_run())
    typer.echo("Tables created.")


@app.command("migrate")
def migrate(
        target: str = typer.Argument("head"),
        project_root: Path = typer.Option(Path.cwd(), help="Directory holding alembic.ini"),
        database_url: Optional[str] = typer.Option(None, help="Override DATABASE_URL; defaults to env"),
):
    """Upgrade the database schema to ``target``."""
    command.upgrade(_alembic_config(project_root.resolve(), database_url), target)


@app.command("makemigrations")
def makemigrations(
        message: str = typer.Option("auto", "-m", "--message"),
        project_root: Path = typer.Option(Path.cwd(), help="Directory holding alembic.ini"),
        database_url: Optional[str] = typer.Option(None, help="Override DATABASE_URL; defaults to env"),
):
    """Autogenerate a revision from the current models."""
    command.revision(_alembic_config(project_root.resolve(), database_url), message=message, autogenerate=True)


@app.command("reconcile")
def reconcile(
        upload_path: Optional[Path] = typer.Option(None, help="Upload root; defaults to UPLOAD_PATH"),
        database_url: Optional[str] = typer.Option(None, help="Override DATABASE_URL; defaults to env"),
        grace_seconds: int = typer.Option(3600, help="Ignore files younger than this"),
        delete_orphans: bool = typer.Option(False, "--delete-orphans", help="Remove files no record points at"),
        as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
):
    """Compare stored file metadata with the upload directory. Exits 1 when drift is found."""
    setup_logging()
    root = upload_path or get_upload_settings().path

    async def _run():
        engine = DBEngine(_db_settings(database_url))
        try:
            return await run_once(engine, root, grace_seconds=grace_seconds, delete_orphans=delete_orphans)
        finally:
            await engine.dispose()

    report = asyncio.run(_run())
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        typer.echo(f"Referenced files: {len(report.referenced)}")
        typer.echo(f"Missing files:    {len(report.missing)}")
        for m in report.missing:
            typer.echo(f"  - {m.registration_id} {m.file_type}: {m.path}")
        typer.echo(f"Orphaned files:   {len(report.orphaned)}")
        for p in report.orphaned:
            typer.echo(f"  - {p}")
        if delete_orphans:
            typer.echo(f"Removed orphans:  {report.removed_orphans}")
    if not report.is_clean:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
