"""Alembic environment for the insight valuation service.

The database URL comes from ``sqlalchemy.url`` when the ini (or a caller's
``Config``) sets one, otherwise from the app config selected by
``insightvalue_env``.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from insightvalue import create_app
from insightvalue.extensions import db

# Model modules register their tables on db.metadata at import time.
from insightvalue.core.events import event_models  # noqa: F401
from insightvalue.domains.insights.models import insight_models  # noqa: F401
from insightvalue.domains.market.models import market_models  # noqa: F401

config = context.config

if config.config_file_name:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except KeyError:
        # ini without [loggers]/[handlers] sections
        pass


def database_url() -> str:
    explicit = config.get_main_option("sqlalchemy.url")
    if explicit:
        return explicit
    app = create_app(config.get_main_option("insightvalue_env", "development"))
    return app.config["SQLALCHEMY_DATABASE_URI"]


def _context_options(url: str) -> dict:
    return {
        "target_metadata": db.metadata,
        "compare_type": True,
        # SQLite cannot ALTER constraints in place.
        "render_as_batch": url.startswith("sqlite"),
    }


def run_offline(url: str) -> None:
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_context_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = url
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_context_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline(database_url())
else:
    run_online(database_url())
