"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi run-job missed_mandatory_alerts
    flask --app wsgi db migrate -m "description"
"""

from dailyscore import create_app

app = create_app()
