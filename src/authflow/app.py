"""
Flask Application Factory.

This application factory wires:
- Session-based authentication for the login flow
- The database plugin (Flask-SQLAlchemy) and its start-up evolution check
- CSRF protection for browser forms
"""
import logging
import os
from typing import Any, Mapping, Optional

from flask import Flask
from flask_wtf.csrf import CSRFProtect

from .api import application_bp
from .cli import evolutions_cli
from .config_defaults import as_bool, require_default, resolve_setting
from .database import check_database_revision, dispose_engines, init_db

logger = logging.getLogger(__name__)

# Initialize CSRF protection globally
csrf = CSRFProtect()


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Explicit settings; these win over environment variables
            and .env/.env.defaults

    Returns:
        Configured Flask application instance

    Raises:
        InvalidDatabaseRevision: if the default data source needs evolution
            and auto-apply is off
    """
    overrides = dict(config or {})
    environ = os.environ

    def setting(key: str, fallback: Any = None) -> Any:
        return resolve_setting(key, overrides, environ, fallback)

    app = Flask(__name__)

    # =========================================================================
    # Security Configuration
    # =========================================================================

    app.config['SECRET_KEY'] = (
        overrides.get('SECRET_KEY') or environ.get('SECRET_KEY') or require_default('SECRET_KEY')
    )

    flask_env = setting('FLASK_ENV', '')

    # Secure cookie - auto mode: off for local testing, on for production
    secure_setting = str(setting('FLASK_SESSION_COOKIE_SECURE', 'auto'))
    if secure_setting == 'auto':
        app.config['SESSION_COOKIE_SECURE'] = flask_env != 'local_test'
    else:
        app.config['SESSION_COOKIE_SECURE'] = as_bool(secure_setting)

    app.config['SESSION_COOKIE_HTTPONLY'] = as_bool(setting('FLASK_SESSION_COOKIE_HTTPONLY', 'True'))
    app.config['SESSION_COOKIE_SAMESITE'] = setting('FLASK_SESSION_COOKIE_SAMESITE', 'Lax')
    app.config['PERMANENT_SESSION_LIFETIME'] = int(setting('FLASK_SESSION_LIFETIME', '3600'))
    app.config['WTF_CSRF_ENABLED'] = as_bool(setting('WTF_CSRF_ENABLED', 'True'))
    app.config['TESTING'] = as_bool(setting('TESTING', 'False'))

    # =========================================================================
    # Database and Evolutions Configuration
    # =========================================================================

    app.config['SQLALCHEMY_DATABASE_URI'] = setting('AUTHFLOW_DATABASE_URI')
    binds = overrides.get('SQLALCHEMY_BINDS')
    if binds:
        app.config['SQLALCHEMY_BINDS'] = dict(binds)
    app.config['AUTHFLOW_APP_PATH'] = setting('AUTHFLOW_APP_PATH') or os.getcwd()
    app.config['EVOLUTIONS_ENABLED'] = as_bool(setting('EVOLUTIONS_ENABLED', 'true'))
    app.config['EVOLUTIONS_AUTO_APPLY'] = as_bool(setting('EVOLUTIONS_AUTO_APPLY', 'false'))
    app.config['EVOLUTIONS_DEFAULT_DB'] = setting('EVOLUTIONS_DEFAULT_DB', 'default')

    init_db(app)

    # =========================================================================
    # CSRF Protection
    # =========================================================================

    csrf.init_app(app)

    # =========================================================================
    # Register Blueprints and CLI
    # =========================================================================

    app.register_blueprint(application_bp)
    app.cli.add_command(evolutions_cli)

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.errorhandler(404)
    def not_found(e):
        return "Not Found", 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error")
        return "Internal Server Error", 500

    @app.route('/health')
    def health():
        """Health check endpoint."""
        from flask import jsonify
        return jsonify({'status': 'ok'})

    # =========================================================================
    # Evolution check (application start)
    # =========================================================================

    try:
        check_database_revision(app)
    except Exception:
        dispose_engines(app)
        raise

    logger.info("Flask application created successfully")

    return app
