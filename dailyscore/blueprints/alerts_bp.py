"""
Daily Score Engine
Admin Alerts Blueprint.

Administrative inbox for alerts on mandatory tasks left unresolved.
Every route requires an administrator identity.

Mutations are idempotent: unknown or already-handled alerts answer 200.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dailyscore.blueprints import parse_limit
from dailyscore.middleware.identity import require_admin
from dailyscore.services.alerts import AlertService
from dailyscore.utils.errors import register_service_error_handlers

logger = logging.getLogger(__name__)

alerts_bp = Blueprint("alerts_bp", __name__, url_prefix="/api/v1/admin/alerts")
register_service_error_handlers(alerts_bp)


@alerts_bp.before_request
def _admin_only():
    return require_admin()


@alerts_bp.route("", methods=["GET"])
def list_alerts():
    """List alerts newest first. Query: ?limit=50&unread_only=true"""
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    alerts = AlertService.list_alerts(limit=parse_limit(default_limit=50), unread_only=unread_only)
    return jsonify({
        "items": [a.to_dict() for a in alerts],
        "total": len(alerts),
        "unread_count": AlertService.unread_count(),
    })


@alerts_bp.route("/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": AlertService.unread_count()})


@alerts_bp.route("/<int:alert_id>/read", methods=["POST"])
def mark_read(alert_id):
    alert = AlertService.mark_read(alert_id)
    return jsonify({"id": alert_id, "found": alert is not None, "is_read": True if alert else None})


@alerts_bp.route("/<int:alert_id>/unread", methods=["POST"])
def mark_unread(alert_id):
    alert = AlertService.mark_unread(alert_id)
    return jsonify({"id": alert_id, "found": alert is not None, "is_read": False if alert else None})


@alerts_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    count = AlertService.mark_all_read()
    return jsonify({"marked_read": count})


@alerts_bp.route("/<int:alert_id>", methods=["DELETE"])
def delete_alert(alert_id):
    deleted = AlertService.delete(alert_id)
    return jsonify({"id": alert_id, "deleted": deleted})
