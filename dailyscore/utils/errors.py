"""JSON error bodies and the service-exception to HTTP mapping.

Every error response has the shape ``{"error": str, "code": "ERR_...",
"details": {...}?}`` so clients can switch on ``code``.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from dailyscore.core.exceptions import (
    ConflictError,
    NotFoundError,
    PendingDaysError,
    UnavailableError,
    ValidationError,
)


class E:
    """Error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # 400
    VALIDATION_RULE = "ERR_VALIDATION_RULE"           # 422
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"           # 401
    FORBIDDEN = "ERR_FORBIDDEN"                       # 403
    NOT_FOUND = "ERR_NOT_FOUND"                       # 404
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"     # 409
    PENDING_DAYS = "ERR_PENDING_DAYS"                 # 409
    INTERNAL = "ERR_INTERNAL"                         # 500
    UNAVAILABLE = "ERR_UNAVAILABLE"                   # 503


_STATUS = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.PENDING_DAYS: 409,
    E.INTERNAL: 500,
    E.UNAVAILABLE: 503,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a view to return; status defaults from *code*."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS.get(code, 400)


def register_service_error_handlers(bp):
    """Translate service exceptions raised under *bp* into JSON errors."""
    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _invalid(error):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(PendingDaysError)
    def _pending(error):
        return api_error(E.PENDING_DAYS, str(error), details={"pending_dates": error.pending_dates})

    @bp.errorhandler(UnavailableError)
    @bp.errorhandler(OperationalError)
    def _unavailable(error):
        logger.warning("Store unavailable on %s: %s", request.endpoint, error)
        return api_error(E.UNAVAILABLE, "Store unavailable, retry later")

    @bp.errorhandler(Exception)
    def _unexpected(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unhandled error on %s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
