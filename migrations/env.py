"""Alembic environment for the gamification schema.

Runs without building the Flask app: the URL comes from the same
``INTERNAL_DATABASE_URL`` > ``DATABASE_URL`` > ``EXTERNAL_DATABASE_URL``
lookup the service uses, with ``postgres://`` URLs normalised for psycopg2.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from config import get_database_uri_from_env
from voltquest.models import db  # noqa: F401 - registers every table on the metadata


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

database_url, _ = get_database_uri_from_env()
if not database_url:
    raise RuntimeError(
        "Set INTERNAL_DATABASE_URL, DATABASE_URL or EXTERNAL_DATABASE_URL before running migrations."
    )
config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

target_metadata = db.Model.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # Batch mode lets the CHECK constraints on game_profiles be altered on SQLite.
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
