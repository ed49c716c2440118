"""
Verification of identity-provider access tokens.

People sign in upstream; this service only checks the HS256 tokens the
provider hands out. The claims read are ``sub`` (the person id, a string
per RFC 7519) and ``roles`` (a list; ``"admin"`` grants administration).
``iss`` and ``aud`` are verified when JWT_ISSUER / JWT_AUDIENCE are set.

generate_access_token mints the same shape for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"
LEEWAY_SECONDS = 30


def _secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def generate_access_token(person_id, roles=None, expires_in=None):
    cfg = current_app.config
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(person_id),
        "roles": list(roles or []),
        "iat": now,
        "exp": now + timedelta(seconds=expires_in or cfg.get("JWT_ACCESS_EXPIRES", 900)),
    }
    if cfg.get("JWT_ISSUER"):
        claims["iss"] = cfg["JWT_ISSUER"]
    if cfg.get("JWT_AUDIENCE"):
        claims["aud"] = cfg["JWT_AUDIENCE"]
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_access_token(token):
    """Verify *token* and return its claims plus an integer ``person_id``.

    Raises jwt.InvalidTokenError (or a subclass such as
    ExpiredSignatureError) when the token cannot be trusted.
    """
    cfg = current_app.config
    claims = jwt.decode(
        token,
        _secret(),
        algorithms=[ALGORITHM],
        issuer=cfg.get("JWT_ISSUER") or None,
        audience=cfg.get("JWT_AUDIENCE") or None,
        leeway=LEEWAY_SECONDS,
        options={"require": ["exp", "sub"]},
    )
    try:
        claims["person_id"] = int(claims["sub"])
    except ValueError as exc:
        raise jwt.InvalidTokenError("sub is not a person id") from exc
    return claims


def is_admin(roles):
    return isinstance(roles, (list, tuple)) and ADMIN_ROLE in roles
