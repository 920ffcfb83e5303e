"""
Database initialization for authflow.

This module provides:
- Flask-SQLAlchemy registration with the configured data source
- Engine lookup by data source name ("default" plus any binds)
- The start-up evolution check
"""
import logging
import os
from pathlib import Path

from flask import Flask
from sqlalchemy.engine import Engine

from .config_defaults import as_bool
from .evolutions import apply_script, check_evolutions, describe_script, evolution_script
from .models import db, User  # noqa: F401  (registers the mappings)

logger = logging.getLogger(__name__)

DEFAULT_DB = 'default'


def default_database_uri() -> str:
    """sqlite file in the current directory."""
    db_path = os.path.join(os.getcwd(), 'authflow.db')
    logger.info(f"Using default database path: {db_path}")
    return f'sqlite:///{db_path}'


def init_db(app: Flask):
    """
    Initialize database with Flask app.

    Tables are NOT created here; run the evolutions instead.
    """
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = default_database_uri()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {'pool_pre_ping': True})

    db.init_app(app)
    logger.info("Database plugin registered")


def get_engine(app: Flask, db_name: str = DEFAULT_DB) -> Engine:
    """
    Return the engine for a named data source.

    "default" is the primary database; other names are SQLALCHEMY_BINDS keys.

    Raises:
        KeyError: if no data source has that name
    """
    extension = app.extensions['sqlalchemy']
    with app.app_context():
        engines = extension.engines
        key = None if db_name == DEFAULT_DB else db_name
        if key not in engines:
            raise KeyError(f"No data source named '{db_name}'")
        return engines[key]


def get_app_path(app: Flask) -> Path:
    """Directory holding evolutions/<db>/ for this application."""
    return Path(app.config.get('AUTHFLOW_APP_PATH') or os.getcwd())


def check_database_revision(app: Flask):
    """
    Start-up evolution check for the default data source.

    With EVOLUTIONS_AUTO_APPLY the pending script is applied; otherwise
    InvalidDatabaseRevision is raised.
    """
    if not as_bool(app.config.get('EVOLUTIONS_ENABLED', True)):
        logger.debug("Evolutions disabled, skipping revision check")
        return

    db_name = app.config.get('EVOLUTIONS_DEFAULT_DB') or DEFAULT_DB
    engine = get_engine(app, db_name)
    app_path = get_app_path(app)

    if as_bool(app.config.get('EVOLUTIONS_AUTO_APPLY', False)):
        script = evolution_script(engine, app_path, db_name)
        if script:
            logger.info(f"Auto-applying evolutions to '{db_name}':\n{describe_script(script)}")
            apply_script(engine, db_name, script)
        return

    check_evolutions(engine, app_path, db_name)


def dispose_engines(app: Flask):
    """Close every pooled connection held by the app's engines."""
    extension = app.extensions.get('sqlalchemy')
    if extension is None:
        return
    with app.app_context():
        for engine in extension.engines.values():
            engine.dispose()
