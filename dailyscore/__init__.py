"""
Daily Score Engine
Flask Application Factory.

Usage:
    from dailyscore import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from dailyscore.config import config
from dailyscore.middleware.identity import init_identity_middleware
from dailyscore.middleware.logging_config import configure_logging
from dailyscore.middleware.rate_limiter import init_rate_limits
from dailyscore.middleware.timing import init_request_timing
from dailyscore.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, per-blueprint only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_class = config[config_name]
    # ProductionConfig validates required env vars on instantiation.
    app.config.from_object(config_class() if config_name == "production" else config_class)

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_identity_middleware(app)
    # After identity: limits are keyed by the acting person.
    limiter.init_app(app)

    # ── Import all models so create_all / Alembic see them ───────────────
    from dailyscore.models import person as _person_models          # noqa: F401
    from dailyscore.models import task as _task_models              # noqa: F401
    from dailyscore.models import completion as _completion_models  # noqa: F401
    from dailyscore.models import alert as _alert_models            # noqa: F401
    from dailyscore.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from dailyscore.blueprints.alerts_bp import alerts_bp
    from dailyscore.blueprints.catalog_bp import catalog_bp
    from dailyscore.blueprints.daily_tasks_bp import daily_tasks_bp
    from dailyscore.blueprints.health_bp import health_bp
    from dailyscore.blueprints.leaderboard_bp import leaderboard_bp
    from dailyscore.blueprints.scheduler_bp import scheduler_bp

    app.register_blueprint(daily_tasks_bp)
    app.register_blueprint(leaderboard_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(scheduler_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-criticality-points")
    def seed_criticality_points_cmd():
        """Create missing criticality → points rows from configuration."""
        from dailyscore.services.scoring import seed_criticality_points
        count = seed_criticality_points()
        click.echo(f"Seeded {count} criticality point rows.")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a registered scheduled job once (for cron)."""
        from dailyscore.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job(job_name)
        click.echo(f"{job_name}: {result['status']} {result.get('result') or result.get('error') or ''}")
        if result["status"] not in ("success", "skipped"):
            raise SystemExit(1)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler (import jobs to register them) ─────────────────────────
    importlib.import_module("dailyscore.services.scheduled_jobs")
    from dailyscore.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app
