"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready   — simple 200 for load balancers
    GET /api/v1/health/live    — database and storage status
    GET /api/v1/health/errors  — most recent error reports
"""

import logging
import time

from flask import Blueprint, current_app, jsonify, request

from pp_assessment.middleware.error_reporting import get_error_reporter
from pp_assessment.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


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
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Assessment storage ───────────────────────────────────────────
    try:
        info = current_app.extensions["project_service"].store.storage_info()
        checks["storage"] = {"status": "ok", **info}
    except Exception as exc:
        checks["storage"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — storage failed: %s", exc)

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Power Platform Governance Assessment",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "reported_errors": len(get_error_reporter()),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code


@health_bp.route("/errors", methods=["GET"])
def recent_errors():
    limit = request.args.get("limit", 50, type=int)
    return jsonify([r.to_dict() for r in get_error_reporter().recent(limit)])
