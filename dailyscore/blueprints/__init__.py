"""
Daily Score Engine
Blueprint registry.
"""

from flask import request


def parse_limit(default_limit=50, max_limit=500):
    """Read a bounded ``limit`` query parameter, falling back on bad input."""
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        return default_limit
    return max(1, min(limit, max_limit))
