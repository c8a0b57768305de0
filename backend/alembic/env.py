"""Alembic environment for the enrollment schema (async engine, online and offline).

Invariants:
    - target_metadata is enrollment.db.base.Base.metadata with every model imported
    - DATABASE_URL wins over alembic.ini; a bare postgresql:// URL gets the asyncpg driver
"""

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

import enrollment.models  # noqa: F401  (registers tables on Base.metadata)
from enrollment.config import Settings
from enrollment.db.base import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    # routed through Settings for the same asyncpg rewrite the app applies
    url = os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    return Settings(database_url=url).database_url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    engine = async_engine_from_config(
        section, prefix="sqlalchemy.", poolclass=pool.NullPool,
    )
    async with engine.connect() as connection:
        await connection.run_sync(_migrate)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
