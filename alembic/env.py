from __future__ import annotations

import logging

from alembic import context
from sqlalchemy import engine_from_config, pool

from mind_reset.db import _ensure_sqlite_dir
from mind_reset.models import Base
from mind_reset.settings import settings

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
_ensure_sqlite_dir(settings.DATABASE_URL)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    logger.info("Running migrations offline")
    run_migrations_offline()
else:
    run_migrations_online()
