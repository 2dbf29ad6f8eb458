# backend/ernamdb/alembic/env.py
"""
Alembic environment for the ERNAM training schema.

Online runs reuse the application's write engine, so DATABASE_WRITE_URL
(or DATABASE_URL) decides where migrations go. Offline runs render SQL
against the first real URL found in alembic config or the environment.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

# backend/ must be importable so `ernamdb` resolves when alembic is run
# from the repository root.
BACKEND_DIR = Path(__file__).resolve().parents[2]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Importing the package registers accounts, training and audit tables.
import ernamdb  # noqa: F401, E402
from ernamdb.database import Base  # noqa: E402

target_metadata = Base.metadata

_URL_ENV_VARS = ("DATABASE_WRITE_URL", "DATABASE_URL")


def _offline_url() -> str:
    url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if url and not url.startswith("driver://"):
        return url
    for name in _URL_ENV_VARS:
        url = (os.getenv(name) or "").strip()
        if url:
            return url
    raise RuntimeError(
        "No database URL for offline migrations; set sqlalchemy.url or "
        "DATABASE_WRITE_URL / DATABASE_URL."
    )


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=_offline_url(), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    from ernamdb.database import write_engine

    with write_engine.connect() as connection:
        # SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
