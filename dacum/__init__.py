"""
DACUM Competency Profile Platform
Flask Application Factory.

Usage:
    from dacum import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from dacum.config import config
from dacum.core.exceptions import (
    ConflictError,
    DacumError,
    EmbeddingUnavailable,
    ForbiddenError,
    GenerationUnavailable,
    MalformedExternalOutput,
    NotFoundError,
    ValidationBlocked,
    ValidationError,
)
from dacum.middleware.logging_config import configure_logging
from dacum.middleware.rate_limiter import init_rate_limits
from dacum.middleware.timing import init_request_timing
from dacum.models import db
from dacum.utils.errors import E, api_error, error_from_exception

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

# exception type -> HTTP status; first match wins
_ERROR_STATUS = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ConflictError, 409),
    (ValidationBlocked, 422),
    (ValidationError, 422),
    (EmbeddingUnavailable, 503),
    (GenerationUnavailable, 503),
    (MalformedExternalOutput, 502),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so create_all sees them ────────────────────────
    from dacum.models import ai as _ai_models                   # noqa: F401
    from dacum.models import competency as _competency_models   # noqa: F401
    from dacum.models import session as _session_models         # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("STORE_BACKEND") == "sql":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.testing:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Services ─────────────────────────────────────────────────────────
    from dacum.services import init_services
    init_services(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from dacum.blueprints.catalog_bp import catalog_bp
    from dacum.blueprints.cluster_bp import cluster_bp
    from dacum.blueprints.compare_bp import compare_bp
    from dacum.blueprints.cp_bp import cp_bp
    from dacum.blueprints.health_bp import health_bp
    from dacum.blueprints.session_bp import session_bp

    app.register_blueprint(session_bp)
    app.register_blueprint(cluster_bp)
    app.register_blueprint(cp_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(compare_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(DacumError)
    def handle_dacum_error(exc):
        status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), None)
        if status is None or status >= 500:
            logger.warning("%s [%s/%s]: %s", type(exc).__name__, exc.component, exc.code, exc.message,
                           extra={"component": exc.component, "code": exc.code})
        return error_from_exception(exc, status=status)

    @app.errorhandler(400)
    def bad_request(e):
        return api_error(E.VALIDATION_REQUIRED, getattr(e, "description", None) or "Bad request", status=400)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Rate limit exceeded", details={"limit": str(getattr(e, "description", ""))})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints are registered) ──────────────────
    init_rate_limits(app, limiter)

    return app
