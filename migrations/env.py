"""
Alembic migration environment for the pipeline database.

The URL comes from DATABASE_URL (same setting the consumers use) unless
overridden on the command line:

    alembic -x dburl=sqlite:///pipeline.db upgrade head
"""

from logging.config import fileConfig

from sqlalchemy import pool, create_engine
from sqlalchemy.engine import Connection, make_url

from alembic import context

# Importing the models registers their tables with Base.metadata
from pipeline.db.models import Base
from shared.config import get_settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# async drivers used at runtime -> sync drivers alembic can use
_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def get_url() -> str:
    url = context.get_x_argument(as_dictionary=True).get("dburl") or get_settings().database_url
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        if url.startswith(async_driver):
            return sync_driver + url[len(async_driver):]
    return url


def _configure_options(url: str) -> dict:
    # sqlite cannot ALTER most constraints in place
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit SQL to the script output without a database connection."""
    url = get_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **_configure_options(url))

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_url()
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        do_run_migrations(connection, url)

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
