"""
Alembic migration environment.
Supports both online (connected to DB) and offline (SQL script generation) modes.

The URL comes from DATABASE_URL_SYNC unless overridden with `-x url=...`.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from booking_core.db.base import Base
from booking_core.models import Container, Unit, LedgerEntry, Reservation  # noqa: F401 - Import models for autogenerate
from booking_core.core.config import get_settings

config = context.config
settings = get_settings()

url_override = context.get_x_argument(as_dictionary=True).get("url")
config.set_main_option("sqlalchemy.url", url_override or settings.DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
