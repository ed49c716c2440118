"""
Identity Middleware: resolves the acting person, sets g.person_id / g.is_admin.

Identity is established upstream; this middleware only reads it.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  sub = person id, roles
  2. Trusted headers (X-Person-Id, X-Person-Role), only when
     TRUST_IDENTITY_HEADERS is on (testing, development, or behind a
     gateway that strips client-supplied copies)

Views use require_person() / require_admin() which return an error
response tuple (401/403) or None.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from dailyscore.services.jwt_service import decode_access_token, is_admin
from dailyscore.utils.errors import E, api_error

logger = logging.getLogger(__name__)

SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _from_headers():
    raw_id = request.headers.get("X-Person-Id")
    if not raw_id:
        return None, False
    try:
        person_id = int(raw_id)
    except ValueError:
        return None, False
    roles = [r.strip() for r in request.headers.get("X-Person-Role", "").split(",") if r.strip()]
    return person_id, is_admin(roles)


def init_identity_middleware(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.person_id = None
        g.is_admin = False

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            try:
                payload = decode_access_token(auth_header[7:])
                g.person_id = payload["person_id"]
                g.is_admin = is_admin(payload.get("roles"))
                return
            except pyjwt.ExpiredSignatureError:
                logger.info("Expired access token on %s", path)
            except pyjwt.InvalidTokenError as exc:
                logger.info("Invalid access token on %s: %s", path, exc)

        if current_app.config.get("TRUST_IDENTITY_HEADERS"):
            g.person_id, g.is_admin = _from_headers()


def require_person():
    """401 response tuple when no person is resolved, else None."""
    if getattr(g, "person_id", None) is None:
        return api_error(E.UNAUTHENTICATED, "Authentication required")
    return None


def require_admin():
    """401/403 response tuple unless the caller is an administrator."""
    denied = require_person()
    if denied:
        return denied
    if not getattr(g, "is_admin", False):
        return api_error(E.FORBIDDEN, "Administrator role required")
    return None
