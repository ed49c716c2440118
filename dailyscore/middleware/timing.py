"""
Per-request id and timing.

Every response carries X-Request-ID (echoed from the caller when given)
and X-Request-Duration-Ms. Completed requests are logged once: server
errors at ERROR, requests slower than SLOW_REQUEST_MS at WARNING, the
rest at DEBUG. Health checks are not logged.
"""

import logging
import time
import uuid

from flask import g, request

logger = logging.getLogger(__name__)

_PROBES = ("/api/v1/health/",)


def init_request_timing(app):
    slow_ms = app.config.get("SLOW_REQUEST_MS", 1000)

    @app.before_request
    def _start():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]

    @app.after_request
    def _finish(response):
        started = g.pop("request_started", None)
        if started is None:
            return response
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_PROBES):
            return response
        if response.status_code >= 500:
            level = logging.ERROR
        elif elapsed_ms > slow_ms:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(
            level, "%s %s -> %d in %.0fms", request.method, request.path, response.status_code, elapsed_ms,
            extra={"method": request.method, "path": request.path,
                   "status": response.status_code, "duration_ms": round(elapsed_ms, 1)},
        )
        return response
