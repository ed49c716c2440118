"""
Scheduler Blueprint: job registry management (admin only).

    GET   /api/v1/scheduler/jobs
    POST  /api/v1/scheduler/jobs/<job_name>/trigger
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle
"""

import logging

from flask import Blueprint, jsonify, request

from dailyscore.middleware.identity import require_admin
from dailyscore.services.scheduler_service import RUN_UNKNOWN, SchedulerService
from dailyscore.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler_bp", __name__, url_prefix="/api/v1/scheduler")
register_service_error_handlers(scheduler_bp)


@scheduler_bp.before_request
def _admin_only():
    return require_admin()


@scheduler_bp.route("/jobs", methods=["GET"])
def list_jobs():
    """List registered jobs with their last-run status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@scheduler_bp.route("/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Run a job now, even when it is disabled."""
    result = SchedulerService.run_job(job_name, force=True)
    if result["status"] == RUN_UNKNOWN:
        return api_error(E.NOT_FOUND, result["error"])
    return jsonify(result)


@scheduler_bp.route("/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
