"""
Health check blueprint.

Endpoints:
    GET /health/ready  — simple 200 for load balancers
    GET /health/live   — dependency check (database, upload directory)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from codereview.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error"}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Artifact storage ─────────────────────────────────────────────
    upload_root = current_app.config["UPLOAD_FOLDER"]
    if os.path.isdir(upload_root) and os.access(upload_root, os.W_OK):
        checks["storage"] = {"status": "ok"}
    else:
        # Created lazily on first upload; not fatal
        checks["storage"] = {"status": "not_ready"}

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
