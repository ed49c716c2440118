"""
Daily Score Engine
Daily Tasks Blueprint.

Endpoints (acting person from identity middleware):
    GET  /api/v1/daily-tasks                : today's board (or the pending view)
    POST /api/v1/daily-tasks/complete       : resolve today's tasks (409 while pending)
    GET  /api/v1/daily-tasks/pending        : unresolved past days
    POST /api/v1/daily-tasks/regularize     : resolve every pending task
    GET  /api/v1/daily-tasks/completions    : the person's records for ?date=
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from dailyscore.core.exceptions import ValidationError
from dailyscore.services import completion_recorder, pending_gate
from dailyscore.middleware.identity import require_person
from dailyscore.utils.errors import E, api_error, register_service_error_handlers
from dailyscore.utils.helpers import local_today, parse_date_input

logger = logging.getLogger(__name__)

daily_tasks_bp = Blueprint("daily_tasks_bp", __name__, url_prefix="/api/v1/daily-tasks")
register_service_error_handlers(daily_tasks_bp)


@daily_tasks_bp.before_request
def _require_identity():
    return require_person()


def _entries(data):
    entries = data.get("completions")
    if not isinstance(entries, list) or not entries:
        return None
    return entries


@daily_tasks_bp.route("", methods=["GET"])
def get_board():
    """Clone today's tasks and return them, or the regularization view."""
    return jsonify(pending_gate.today_board(g.person_id, local_today()))


@daily_tasks_bp.route("/complete", methods=["POST"])
def complete_tasks():
    """
    Resolve a batch of tasks.

    Body: {"completions": [{"task_id": 1, "status": "completed"}, ...],
           "date": "YYYY-MM-DD" (optional, must be today)}

    200 when every task was written, 207 when some were not.
    """
    data = request.get_json(silent=True) or {}
    entries = _entries(data)
    if entries is None:
        return api_error(E.VALIDATION_REQUIRED, "completions must be a non-empty list")
    try:
        day = parse_date_input(data.get("date"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    today = local_today()
    if day is not None and day != today:
        raise ValidationError(
            "Only today's tasks can be submitted here; use /regularize for earlier days",
            details={"date": day.isoformat(), "today": today.isoformat()},
        )
    result = pending_gate.submit_today(g.person_id, entries, today)
    return jsonify(result.to_dict()), 200 if result.all_succeeded else 207


@daily_tasks_bp.route("/pending", methods=["GET"])
def get_pending():
    eligibility = pending_gate.get_eligibility(g.person_id, local_today())
    return jsonify({"person_id": g.person_id, **eligibility.to_dict()})


@daily_tasks_bp.route("/regularize", methods=["POST"])
def regularize():
    """
    Resolve every pending task in one submission.

    Body: {"completions": [{"task_id": 1, "status": "no_demand"}, ...]}
    Results are reported per pending day.
    """
    data = request.get_json(silent=True) or {}
    entries = _entries(data)
    if entries is None:
        return api_error(E.VALIDATION_REQUIRED, "completions must be a non-empty list")

    result = pending_gate.submit_regularization(g.person_id, entries, local_today())
    return jsonify(result.to_dict()), 200 if result.all_succeeded else 207


@daily_tasks_bp.route("/completions", methods=["GET"])
def list_completions():
    try:
        day = parse_date_input(request.args.get("date")) or local_today()
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    records = completion_recorder.get_completions(g.person_id, day)
    return jsonify({
        "date": day.isoformat(),
        "items": [r.to_dict() for r in records],
        "total": len(records),
        "stats": completion_recorder.daily_stats(g.person_id, day),
    })
