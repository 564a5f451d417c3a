"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  - simple 200 for load balancers
    GET /api/v1/health/live   - dependency status (DB, AI providers, catalog)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from dacum.models import db
from dacum.services import get_services

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe - always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True
    services = get_services()

    # ── Database ─────────────────────────────────────────────────────
    if current_app.config.get("STORE_BACKEND") == "sql":
        try:
            t0 = time.perf_counter()
            db.session.execute(db.text("SELECT 1"))
            db_ms = (time.perf_counter() - t0) * 1000
            checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
        except Exception as exc:
            checks["database"] = {"status": "error", "detail": str(exc)}
            overall = False
            logger.error("Health check - database failed: %s", exc)
    else:
        checks["database"] = {"status": "skipped", "detail": "memory store backend"}

    # ── AI providers (optional, never fail overall health) ───────────
    checks["ai"] = {
        "status": "ok" if services.gateway.has_real_provider() else "local_stub",
        "generation_enabled": services.gateway.generation_enabled,
    }

    # ── Catalog ──────────────────────────────────────────────────────
    try:
        catalog = services.catalog.status()
        checks["catalog"] = {
            "status": "ok" if catalog["record_count"] else "empty",
            "record_count": catalog["record_count"],
            "last_page": catalog["last_page"],
        }
    except Exception as exc:
        checks["catalog"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check - catalog failed: %s", exc)

    checks["app"] = {
        "name": "DACUM Competency Profile Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
