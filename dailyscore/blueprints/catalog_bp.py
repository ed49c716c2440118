"""
Daily Score Engine
Task Catalog Blueprint.

Endpoints:
    GET  /api/v1/criticality-points         : current criticality → points table
    PUT  /api/v1/criticality-points         : edit table (admin; future tasks only)
    POST /api/v1/tasks                      : create an ad-hoc task instance (admin)
    POST /api/v1/tasks/clone                : clone a person's instances for a day (admin)
    POST /api/v1/admin/ledgers/reconcile    : rebuild ledgers from records (admin)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dailyscore.middleware.identity import require_admin, require_person
from dailyscore.models.task import CRITICALITY_LEVELS, DEFAULT_CRITICALITY
from dailyscore.services import scoring, task_catalog
from dailyscore.services.ranking import invalidate_leaderboard_cache
from dailyscore.utils.errors import E, api_error, register_service_error_handlers
from dailyscore.utils.helpers import local_today, parse_date_input

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(catalog_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  CRITICALITY POINTS
# ═══════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/criticality-points", methods=["GET"])
def get_criticality_points():
    denied = require_person()
    if denied:
        return denied
    table = scoring.criticality_table()
    return jsonify({
        "items": [{"criticality": c, "default_points": table.get(c, 0)} for c in CRITICALITY_LEVELS],
    })


@catalog_bp.route("/criticality-points", methods=["PUT"])
def put_criticality_points():
    """Body: {"low": 5, "critical": 50, ...}. Existing task instances keep their points."""
    denied = require_admin()
    if denied:
        return denied
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "A {criticality: points} object is required")

    table = scoring.update_criticality_points(data)
    return jsonify({
        "items": [{"criticality": c, "default_points": table.get(c, 0)} for c in CRITICALITY_LEVELS],
    })


# ═══════════════════════════════════════════════════════════════════════════
#  TASK INSTANCES
# ═══════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/tasks", methods=["POST"])
def create_task():
    denied = require_admin()
    if denied:
        return denied
    data = request.get_json(silent=True) or {}

    title = (data.get("title") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    assigned_to = data.get("assigned_to")
    if not isinstance(assigned_to, int) or isinstance(assigned_to, bool):
        return api_error(E.VALIDATION_REQUIRED, "assigned_to (person id) is required")
    try:
        task_date = parse_date_input(data.get("task_date"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    task = task_catalog.create_task_instance(
        title=title,
        assigned_to=assigned_to,
        criticality=data.get("criticality", DEFAULT_CRITICALITY),
        is_mandatory=bool(data.get("is_mandatory", False)),
        task_date=task_date,
        description=data.get("description", ""),
        sector_id=data.get("sector_id"),
    )
    return jsonify(task.to_dict()), 201


@catalog_bp.route("/tasks/clone", methods=["POST"])
def clone_tasks():
    """Body: {"person_id": 1, "date": "YYYY-MM-DD" (optional)}"""
    denied = require_admin()
    if denied:
        return denied
    data = request.get_json(silent=True) or {}
    person_id = data.get("person_id")
    if not isinstance(person_id, int) or isinstance(person_id, bool):
        return api_error(E.VALIDATION_REQUIRED, "person_id is required")
    try:
        day = parse_date_input(data.get("date")) or local_today()
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    ids = task_catalog.clone_tasks_for_day(person_id, day)
    return jsonify({"person_id": person_id, "date": day.isoformat(), "task_ids": ids})


# ═══════════════════════════════════════════════════════════════════════════
#  LEDGERS
# ═══════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/admin/ledgers/reconcile", methods=["POST"])
def reconcile_ledgers():
    """Recompute one ledger (?person_id=) or all of them."""
    denied = require_admin()
    if denied:
        return denied
    person_id = request.args.get("person_id", type=int)
    if person_id is not None:
        result = scoring.recompute_ledger(person_id)
        if result["drifted"]:
            invalidate_leaderboard_cache()
        return jsonify(result)

    result = scoring.reconcile_all_ledgers()
    if result["repaired"]:
        invalidate_leaderboard_cache()
    return jsonify(result)
