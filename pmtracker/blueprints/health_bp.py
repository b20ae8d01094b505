"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round-trip and table counts
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from pmtracker.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

_CORE_TABLES = ("projects", "people", "issues", "risks", "changes", "escalations", "faults")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with database status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    # ── Core tables ──────────────────────────────────────────────────
    if overall:
        tables = {}
        for tbl in _CORE_TABLES:
            try:
                tables[tbl] = db.session.execute(db.text(f"SELECT COUNT(*) FROM {tbl}")).scalar()
            except Exception as exc:
                db.session.rollback()
                tables[tbl] = f"error: {exc}"
                overall = False
        checks["tables"] = tables

    checks["app"] = {
        "name": "PM Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
