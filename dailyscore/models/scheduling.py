"""
Daily Score Engine
Persistent state of the nightly jobs.

One row per registered job: the time of day cron is expected to fire it,
whether it is enabled, and the outcome of its latest run.
"""

from datetime import datetime, timezone

from dailyscore.models import db

RUN_SUCCESS = "success"
RUN_FAILED = "failed"
RUN_SKIPPED = "skipped"


class ScheduledJob(db.Model):
    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    run_at = db.Column(db.String(5), nullable=False, default="00:00",
                       comment="Local HH:MM the external cron triggers the job")
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed, skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    run_count = db.Column(db.Integer, nullable=False, default=0)
    failure_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def record_run(self, status, duration_ms, result=None, error=None):
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.last_error = error
        if status != RUN_SKIPPED:
            self.run_count = (self.run_count or 0) + 1
        if status == RUN_FAILED:
            self.failure_count = (self.failure_count or 0) + 1

    def to_dict(self):
        return {
            "job_name": self.job_name,
            "description": self.description,
            "run_at": self.run_at,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "last_error": self.last_error,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} at {self.run_at}>"
