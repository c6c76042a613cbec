"""
Code Review Platform
Flask Application Factory.

Usage:
    from codereview import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from codereview.config import config
from codereview.middleware.jwt_auth import init_jwt_middleware
from codereview.middleware.logging_config import configure_logging
from codereview.middleware.rate_limiter import init_rate_limits
from codereview.middleware.security_headers import init_security_headers
from codereview.middleware.timing import init_request_timing
from codereview.models import db
from codereview.services.storage import init_storage
from codereview.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None, overrides: dict | None = None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides:   Config values applied on top of the selected class
                     (tests use this for temporary upload directories).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    # ── Request timing (first before_request: sets g.request_id) ─────────
    init_request_timing(app)

    # ── JWT auth guard (resolves g.current_user) ─────────────────────────
    init_jwt_middleware(app)

    # ── Rate limiting (after the guard: per-user keys need g.jwt_user_id) ──
    limiter.init_app(app)

    # ── Security headers ─────────────────────────────────────────────────
    init_security_headers(app)

    # ── Artifact storage ─────────────────────────────────────────────────
    init_storage(app)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from codereview.models import auth as _auth_models              # noqa: F401
    from codereview.models import project as _project_models        # noqa: F401
    from codereview.models import submission as _submission_models  # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from codereview.blueprints.auth_bp import auth_bp
    from codereview.blueprints.health_bp import health_bp
    from codereview.blueprints.project_bp import project_bp
    from codereview.blueprints.submission_bp import submission_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(submission_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)

    # ── Auto-create tables outside production (migrations own prod schema) ──
    if config_name != "production":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-tables")
    def create_tables_cmd():
        """Create all tables without running migrations (local setups)."""
        db.create_all()
        logger.info("Tables created on %s", db.engine.url.render_as_string(hide_password=True))

    return app
