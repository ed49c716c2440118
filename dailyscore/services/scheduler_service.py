"""
Daily Score Engine
Scheduler Service.

Jobs are plain functions registered with ``@register_job(name, run_at=...)``.
Nothing here starts threads: an external cron calls ``flask run-job <name>``
at ``run_at`` local time, and admins can trigger a job through the API.

Each run executes in its own app context and its outcome is written to the
job's ScheduledJob row. A disabled job is skipped unless the run is forced.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from flask import Flask

from dailyscore.models import db
from dailyscore.models.scheduling import RUN_FAILED, RUN_SKIPPED, RUN_SUCCESS, ScheduledJob

logger = logging.getLogger(__name__)

RUN_UNKNOWN = "unknown"


@dataclass(frozen=True)
class JobSpec:
    name: str
    fn: Callable
    run_at: str

    @property
    def description(self) -> str:
        doc = (self.fn.__doc__ or "").strip()
        return doc.splitlines()[0] if doc else self.name


_jobs: dict[str, JobSpec] = {}


def register_job(name: str, run_at: str = "00:00"):
    """Register ``fn(app) -> dict`` as job *name*, fired daily at *run_at*."""
    def decorator(fn: Callable) -> Callable:
        _jobs[name] = JobSpec(name=name, fn=fn, run_at=run_at)
        return fn
    return decorator


def get_registered_jobs() -> dict[str, JobSpec]:
    return dict(_jobs)


class SchedulerService:
    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler ready with jobs: %s", ", ".join(sorted(_jobs)))

    @classmethod
    def ensure_jobs_registered(cls) -> list[str]:
        """Create the ScheduledJob row of every registered job that lacks one.

        Returns the names of the rows created.
        """
        existing = {name for (name,) in db.session.query(ScheduledJob.job_name)}
        missing = [spec for name, spec in _jobs.items() if name not in existing]
        for spec in missing:
            db.session.add(ScheduledJob(
                job_name=spec.name, description=spec.description, run_at=spec.run_at,
            ))
        if missing:
            db.session.commit()
            logger.info("Registered job rows: %s", ", ".join(s.name for s in missing))
        return [s.name for s in missing]

    @classmethod
    def run_job(cls, job_name: str, *, force: bool = False) -> dict:
        """Run *job_name* once and record the outcome.

        Returns ``{job_name, status, duration_ms, result, error}`` where status
        is success, failed, skipped (disabled and not forced) or unknown.
        """
        spec = _jobs.get(job_name)
        if spec is None or cls._app is None:
            return {"job_name": job_name, "status": RUN_UNKNOWN, "duration_ms": 0,
                    "result": None, "error": f"Unknown job: {job_name}"}

        record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if record is not None and not record.is_enabled and not force:
            logger.info("Job %s is disabled, skipping", job_name)
            return cls._finish(job_name, RUN_SKIPPED, 0, None, None)

        started = time.monotonic()
        result, error, status = None, None, RUN_SUCCESS
        try:
            with cls._app.app_context():
                result = spec.fn(cls._app)
        except Exception as exc:  # noqa: BLE001
            status, error = RUN_FAILED, str(exc)
            logger.exception("Job %s failed", job_name)
        duration_ms = int((time.monotonic() - started) * 1000)
        return cls._finish(job_name, status, duration_ms, result, error)

    @classmethod
    def _finish(cls, job_name, status, duration_ms, result, error) -> dict:
        record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if record is not None:
            record.record_run(status, duration_ms, result=result, error=error)
            db.session.commit()
        logger.info("Job %s %s in %d ms", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {"job_name": job_name, "status": status, "duration_ms": duration_ms,
                "result": result, "error": error}

    @classmethod
    def list_jobs(cls) -> list[dict]:
        records = {j.job_name: j for j in ScheduledJob.query.all()}
        jobs = []
        for name, spec in sorted(_jobs.items(), key=lambda item: item[1].run_at):
            record = records.get(name)
            jobs.append(record.to_dict() if record else {
                "job_name": name, "description": spec.description,
                "run_at": spec.run_at, "is_enabled": True, "last_run_status": None,
            })
        return jobs

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        if job_name not in _jobs:
            return None
        cls.ensure_jobs_registered()
        record = ScheduledJob.query.filter_by(job_name=job_name).one()
        record.is_enabled = enabled
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "disabled")
        return record.to_dict()
