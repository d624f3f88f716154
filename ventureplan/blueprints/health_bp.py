"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database, storage and template status
"""

import logging
import time
from pathlib import Path

from flask import Blueprint, current_app, jsonify

from ventureplan.models import db
from ventureplan.models.document import DocumentTemplate

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
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

    # ── Artifact storage ─────────────────────────────────────────────
    root = Path(current_app.config["STORAGE_ROOT"])
    if root.is_dir():
        checks["storage"] = {"status": "ok"}
    else:
        checks["storage"] = {"status": "missing", "detail": "STORAGE_ROOT does not exist yet"}

    # ── Templates ────────────────────────────────────────────────────
    if checks["database"]["status"] == "ok":
        count = db.session.query(DocumentTemplate.module_type).distinct().count()
        checks["templates"] = {"status": "ok" if count else "empty", "module_types": count}

    checks["app"] = {
        "name": "Venture Plan Workbench",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code
