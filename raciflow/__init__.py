"""
raciflow — Process & RACI Mapping Service
Flask Application Factory.

Usage:
    from raciflow import create_app
    app = create_app()           # APP_ENV, default "development"
    app = create_app("testing")  # in-memory SQLite, no rate limits
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event as _sa_event, engine as _sa_engine
from sqlalchemy.exc import SQLAlchemyError

from raciflow.config import config
from raciflow.core.exceptions import ConflictError, GraphAnchorError, NotFoundError, ValidationError
from raciflow.middleware.logging_config import configure_logging
from raciflow.middleware.rate_limiter import init_rate_limits
from raciflow.middleware.timing import init_request_timing
from raciflow.models import db
from raciflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Write methods that must carry a JSON body under /api/
_JSON_METHODS = frozenset({"POST", "PUT", "PATCH"})


# ── SQLite FK enforcement (role / action deletes cascade to RACI cells) ─
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are attached per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, then "development".

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    config_class = config[config_name]

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    if config_name == "production":
        config_class()  # raises on missing DATABASE_URL / SECRET_KEY

    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    _init_cors(app)

    init_request_timing(app)
    _register_request_guard(app)

    _create_tables(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from raciflow.blueprints.organization_bp import organization_bp
    from raciflow.blueprints.process_bp import process_bp
    from raciflow.blueprints.raci_bp import raci_bp

    for blueprint in (organization_bp, process_bp, raci_bp):
        app.register_blueprint(blueprint)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "raciflow"}

    _register_error_handlers(app)

    # Needs the blueprints registered
    init_rate_limits(app, limiter)

    logger.info(
        "raciflow app created",
        extra={"config": config_name, "blueprint_count": len(app.blueprints)},
    )
    return app


# ── Factory steps ─────────────────────────────────────────────────────────────


def _init_cors(app):
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _register_request_guard(app):
    """413 above MAX_CONTENT_LENGTH; 415 for non-JSON write bodies under /api/."""

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in _JSON_METHODS and request.path.startswith("/api/"):
            if request.data and "json" not in (request.content_type or ""):
                abort(415, description="Content-Type must be application/json")


def _create_tables(app):
    """CREATE IF NOT EXISTS for every model; migrations stay authoritative."""
    from raciflow.models import organization, process, raci  # noqa: F401

    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            logger.warning("db.create_all() failed: %s", e)


def _register_error_handlers(app):
    # ── Service exceptions ───────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(GraphAnchorError)
    def _graph_anchor_error(e):
        return api_error(E.GRAPH_ANCHOR, str(e), details=e.details)

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(ConflictError)
    def _conflict_error(e):
        return api_error(E.CONFLICT_DUPLICATE, str(e), details={e.field: "Already exists"})

    @app.errorhandler(SQLAlchemyError)
    def _database_error(e):
        db.session.rollback()
        logger.error("Database error: %s", e, exc_info=True)
        return api_error(E.DATABASE, "Database error")

    # ── HTTP errors ──────────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
