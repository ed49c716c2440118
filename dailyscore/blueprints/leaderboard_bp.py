"""
Leaderboard Blueprint.

    GET /api/v1/leaderboard: ranked active persons, unranked pending persons,
                              and the caller's own entry. Requires an identity.
"""

import logging

from flask import Blueprint, g, jsonify

from dailyscore.middleware.identity import require_person
from dailyscore.services import ranking
from dailyscore.utils.errors import register_service_error_handlers
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)

leaderboard_bp = Blueprint("leaderboard_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(leaderboard_bp)


@leaderboard_bp.before_request
def _require_identity():
    return require_person()


@leaderboard_bp.route("/leaderboard", methods=["GET"])
def get_leaderboard():
    payload = ranking.leaderboard_payload(g.person_id, local_today())
    return jsonify(payload)
