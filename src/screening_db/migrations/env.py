"""Alembic environment for the screening_sessions schema.

Migrations run over the synchronous libpq URL from ``get_sync_url()``;
the application itself talks to the same database through asyncpg.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from screening_db.config import get_sync_url
from screening_db.models.base import Base
import screening_db.models.session  # noqa: F401  (registers the table)

config = context.config
config.set_main_option("sqlalchemy.url", get_sync_url())
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
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
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
