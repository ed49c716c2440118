"""
Health checks.

    GET /api/v1/health/live   process is up, no dependency checks
    GET /api/v1/health/ready  database round-trip, cache backend, job failures

Only the database decides readiness. A cold cache or a failed nightly job
is reported but does not take the instance out of rotation.
"""

import logging
import time

from flask import Blueprint, jsonify

from dailyscore.models import db
from dailyscore.models.scheduling import ScheduledJob
from dailyscore.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/live", methods=["GET"])
def live():
    return jsonify({"status": "ok"})


@health_bp.route("/ready", methods=["GET"])
def ready():
    checks = {}
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - started) * 1000, 1),
        }
    except Exception as exc:  # noqa: BLE001
        db.session.rollback()
        logger.error("Readiness: database unreachable: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "unavailable", "checks": checks}), 503

    checks["cache"] = cache_service.health_check()
    failing = [
        j.job_name
        for j in ScheduledJob.query.filter_by(is_enabled=True, last_run_status="failed").all()
    ]
    checks["jobs"] = {"status": "error" if failing else "ok", "failing": failing}

    return jsonify({"status": "ok", "checks": checks})
