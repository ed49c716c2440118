"""
Logging setup.

Production writes one JSON object per line; development and tests get a
short colored line. Records emitted while a request is being served are
stamped with its request_id and the acting person_id, so a completion
write can be traced back to the HTTP call that caused it.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

CONTEXT_KEYS = ("request_id", "person_id", "job_name", "method", "path", "status", "duration_ms")

_COLORS = {"DEBUG": "36", "INFO": "32", "WARNING": "33", "ERROR": "31", "CRITICAL": "35"}


class RequestContextFilter(logging.Filter):
    def filter(self, record):
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "person_id", None) is None:
                record.person_id = getattr(g, "person_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({k: getattr(record, k) for k in CONTEXT_KEYS if getattr(record, k, None) is not None})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    def format(self, record):
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        color = _COLORS.get(record.levelname, "0")
        who = f" p={record.person_id}" if getattr(record, "person_id", None) is not None else ""
        line = f"\033[{color}m{ts} {record.levelname:<7}\033[0m {record.name}{who}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    LOG_LEVEL overrides the default (INFO in production, DEBUG otherwise).
    """
    production = not app.debug and not app.testing
    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ConsoleFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # create_app may run more than once per process (tests).
    root.handlers[:] = [handler]
    root.setLevel(level)
    app.logger.setLevel(level)
    for name in ("werkzeug", "sqlalchemy.engine", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
