from __future__ import annotations

import asyncio
import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

from registration_intake.app.core.logging import setup_logging
from registration_intake.db.base import Base
from registration_intake.db.settings import DBSettings
from registration_intake.registrations import models  # noqa: F401  (registers tables on Base.metadata)

# --- Logging: app logging unless explicitly disabled ---
USE_APP_LOGGING = os.getenv("ALEMBIC_USE_APP_LOGGING", "1") == "1"

config = context.config
if USE_APP_LOGGING:
    setup_logging(level=os.getenv("LOG_LEVEL"), fmt=os.getenv("LOG_FORMAT"))
    logging.getLogger(__name__).debug("Alembic using app logging setup.")
elif config.config_file_name is not None:
    fileConfig(config.config_file_name)

# --- Database URL: explicit option wins, else the app's resolution rules ---
url_str = config.get_main_option("sqlalchemy.url") or DBSettings().resolved_database_url
config.set_main_option("sqlalchemy.url", url_str)

target_metadata = Base.metadata

is_async = make_url(url_str).get_dialect().is_async


def run_migrations_offline() -> None:
    context.configure(
        url=url_str,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online_async() -> None:
    connectable = create_async_engine(url_str, poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online_sync() -> None:
    from sqlalchemy import create_engine

    connectable = create_engine(url_str, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        do_run_migrations(connection)
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
elif is_async:
    asyncio.run(run_migrations_online_async())
else:
    run_migrations_online_sync()
