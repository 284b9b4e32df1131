"""
Alembic migration environment.

Migrations run over a synchronous driver. The URL comes from
DATABASE_URL_SYNC, falling back to DATABASE_URL with its async driver
swapped out (postgresql+asyncpg -> postgresql, sqlite+aiosqlite -> sqlite).
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from boxoffice.db.base import Base
from boxoffice import models  # noqa: F401 - registers every table on Base.metadata
from boxoffice.core.config import get_settings

config = context.config
settings = get_settings()

ASYNC_DRIVERS = {"+asyncpg": "", "+aiosqlite": ""}


def sync_url() -> str:
    if settings.DATABASE_URL_SYNC:
        return settings.DATABASE_URL_SYNC
    url = settings.DATABASE_URL
    for driver, replacement in ASYNC_DRIVERS.items():
        url = url.replace(driver, replacement)
    return url


config.set_main_option("sqlalchemy.url", sync_url())

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def configure_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        # SQLite cannot ALTER constraints in place
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the migration as a SQL script."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_options(url),
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
        context.configure(
            connection=connection,
            **configure_options(config.get_main_option("sqlalchemy.url")),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
