"""Alembic environment — async migrations for the escrow ledger tables.

Invariants:
    - Target metadata covers every escrow table (transactions, proofs,
      disputes, ratings, events) via the escrow_engine.models import
    - An explicit DATABASE_URL wins; otherwise alembic.ini's URL is used

Design Decisions:
    - URL normalization (postgresql:// → postgresql+asyncpg://) is done by
      config.Settings, so the migration runner and the app agree on one URL
    - NullPool: a migration run opens exactly one connection
"""

import asyncio
import os
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

import escrow_engine.models  # noqa: F401  (registers escrow tables on Base)
from escrow_engine.config import Settings
from escrow_engine.db.base import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _escrow_database_url() -> str:
    if os.environ.get("DATABASE_URL"):
        return Settings().database_url
    return config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    """Emit escrow DDL as SQL without a live connection."""
    context.configure(
        url=_escrow_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _escrow_database_url()
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
