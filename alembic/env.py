from __future__ import annotations

from logging.config import fileConfig
import logging

from alembic import context
from sqlalchemy import engine_from_config, pool

from vocalflow.core.config import settings
from vocalflow.models import Base

config = context.config
if config.config_file_name is not None:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except (KeyError, ValueError):
        logging.basicConfig(level=settings.LOG_LEVEL)

target_metadata = Base.metadata

# check constraints carry the job invariants, so type and default drift matter
COMPARE_OPTS = {"compare_type": True, "compare_server_default": True}


def _database_url() -> str:
    """`alembic -x db_url=...` wins over DATABASE_URL_SYNC."""
    return context.get_x_argument(as_dictionary=True).get("db_url") or settings.DATABASE_URL_SYNC


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    cfg = dict(config.get_section(config.config_ini_section) or {})
    cfg["sqlalchemy.url"] = _database_url()

    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, **COMPARE_OPTS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
