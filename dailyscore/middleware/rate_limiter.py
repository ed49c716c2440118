"""
Per-blueprint rate limits (Flask-Limiter).

Limits are counted per acting person when the identity middleware resolved
one and per client address otherwise, so people behind one office NAT do
not share a completion budget. The limiter must be initialised after the
identity middleware for ``g.person_id`` to be set when limits are checked.
"""

import logging

from flask import g
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

# blueprint name -> config key holding its limit
BLUEPRINT_LIMITS = {
    "daily_tasks_bp": "COMPLETION_RATE_LIMIT",
    "alerts_bp": "ADMIN_RATE_LIMIT",
    "catalog_bp": "ADMIN_RATE_LIMIT",
    "scheduler_bp": "ADMIN_RATE_LIMIT",
    "leaderboard_bp": "READ_RATE_LIMIT",
}


def person_or_address():
    person_id = getattr(g, "person_id", None)
    if person_id is not None:
        return f"person:{person_id}"
    return get_remote_address()


def init_rate_limits(app, limiter):
    """Attach the configured limit to each API blueprint; exempt the health checks."""
    if app.config.get("TESTING"):
        return

    applied = {}
    for bp_name, config_key in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        limit = app.config.get(config_key)
        if bp is None or not limit:
            continue
        limiter.limit(limit, key_func=person_or_address)(bp)
        applied[bp_name] = limit

    if "health_bp" in app.blueprints:
        limiter.exempt(app.blueprints["health_bp"])

    logger.info("Rate limits: %s", ", ".join(f"{k}={v}" for k, v in applied.items()))
