"""Calendar helpers.

Every "today" decision (which instances are cloned, which days are pending,
which day a completion belongs to) is made against the business calendar
day in BUSINESS_TIMEZONE, not the UTC date of the server clock.
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context


def local_today():
    """Current calendar day in the configured business time zone."""
    tz_name = current_app.config.get("BUSINESS_TIMEZONE") if has_app_context() else None
    if not tz_name:
        return date.today()
    try:
        return datetime.now(ZoneInfo(tz_name)).date()
    except ZoneInfoNotFoundError:
        current_app.logger.warning("Unknown BUSINESS_TIMEZONE %r, using server local date", tz_name)
        return date.today()


def parse_date_input(value):
    """Parse a ``YYYY-MM-DD`` request field.

    Empty input gives None; anything else that is not an ISO calendar date
    raises ValueError so the caller can answer 400.
    """
    if value in (None, ""):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None
