# migrations/env.py
from __future__ import annotations

import os
import sys
import logging
from logging.config import fileConfig

from alembic import context

# -----------------------------------------------------------------------------
# Project root on sys.path so "import backoffice" works from any cwd.
# This file lives at: <project_root>/migrations/env.py
# -----------------------------------------------------------------------------
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

config = context.config

if config.config_file_name:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except KeyError:
        # alembic.ini without logging sections
        pass

logger = logging.getLogger("alembic.env")

# -----------------------------------------------------------------------------
# Two ways in:
# - DATABASE_URL set (CI, containers): plain Alembic, no Flask app context.
# - Otherwise `flask db ...`: engine and metadata come from Flask-Migrate.
# -----------------------------------------------------------------------------
DB_URL = os.getenv("DATABASE_URL")

USING_FLASK_MIGRATE = False
target_db = None
current_app = None


def _set_sqlalchemy_url(url: str) -> None:
    """Set sqlalchemy.url, escaping % for ConfigParser."""
    if not url:
        return
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))


def _import_metadata():
    from backoffice import models  # noqa: F401  registers the tables
    from backoffice.extensions import db

    return db.metadata


def _bootstrap_flask_migrate():
    global USING_FLASK_MIGRATE, target_db, current_app  # noqa: PLW0603

    from flask import current_app as flask_current_app

    current_app = flask_current_app
    USING_FLASK_MIGRATE = True
    target_db = current_app.extensions["migrate"].db

    def get_engine():
        return current_app.extensions["migrate"].db.engine

    def get_engine_url():
        return get_engine().url.render_as_string(hide_password=False).replace("%", "%%")

    return get_engine, get_engine_url


if DB_URL:
    from backoffice.settings import _normalize_db_url

    _set_sqlalchemy_url(_normalize_db_url(DB_URL))
    get_engine = None
else:
    get_engine, get_engine_url = _bootstrap_flask_migrate()
    config.set_main_option("sqlalchemy.url", get_engine_url())


def get_metadata():
    if not USING_FLASK_MIGRATE:
        return _import_metadata()
    return target_db.metadata


# -----------------------------------------------------------------------------
# No empty autogenerate revisions
# -----------------------------------------------------------------------------
def process_revision_directives(ctx, revision, directives):
    cmd_opts = getattr(config, "cmd_opts", None)
    if cmd_opts and getattr(cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No changes in schema detected.")


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No sqlalchemy.url configured. Set DATABASE_URL or run through `flask db`.")

    context.configure(
        url=url,
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        process_revision_directives=process_revision_directives,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    if USING_FLASK_MIGRATE:
        conf_args = dict(current_app.extensions["migrate"].configure_args or {})
        conf_args.setdefault("process_revision_directives", process_revision_directives)
        conf_args.setdefault("compare_type", True)

        connectable = get_engine()
        with connectable.connect() as connection:
            conf_args.setdefault("render_as_batch", connection.dialect.name == "sqlite")
            context.configure(
                connection=connection,
                target_metadata=get_metadata(),
                **conf_args,
            )
            with context.begin_transaction():
                context.run_migrations()
        return

    from sqlalchemy import create_engine

    engine = create_engine(config.get_main_option("sqlalchemy.url"))
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=get_metadata(),
            process_revision_directives=process_revision_directives,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
