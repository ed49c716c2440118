"""
Completion Recorder.

Writes one CompletionRecord per (task instance, assignee, day) and folds the
resulting point change into the assignee's PointsLedger.

Rules:
  - The whole batch is validated before anything is written. A bad status,
    an unknown task or a task assigned to someone else rejects the batch.
  - Each task is committed on its own: record upsert + ledger fold share one
    transaction, so a record never exists without its fold.
  - Re-submitting a triple overwrites status and points_earned; the ledger
    receives only the difference between the old and the new contribution.
  - A past day is resolved once: only instances dated that day with no
    record yet are accepted, and an existing record is never rewritten.
  - Unique-constraint collisions from concurrent writers are retried up to
    COMPLETION_MAX_RETRIES times, then reported as a per-task conflict.
  - A batch is not atomic across tasks; BatchResult tells the caller which
    tasks were written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from dailyscore.core.exceptions import ConflictError, NotFoundError, UnavailableError, ValidationError
from dailyscore.models import db
from dailyscore.models.completion import COMPLETION_STATUSES, CompletionRecord, CompletionStatus
from dailyscore.models.person import Person
from dailyscore.models.task import TaskInstance
from dailyscore.services import scoring
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)

OUTCOME_OK = "ok"
OUTCOME_CONFLICT = "conflict"
OUTCOME_UNAVAILABLE = "unavailable"


@dataclass
class TaskOutcome:
    """Result of writing one task's completion."""
    task_id: int
    status: str
    outcome: str
    points_earned: int | None = None
    points_delta: int = 0
    created: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_OK

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "status": self.status,
            "outcome": self.outcome,
            "points_earned": self.points_earned,
            "points_delta": self.points_delta,
            "created": self.created,
            "error": self.error,
        }


@dataclass
class BatchResult:
    person_id: int
    completion_date: date
    outcomes: list[TaskOutcome] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def succeeded(self) -> list[int]:
        return [o.task_id for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[int]:
        return [o.task_id for o in self.outcomes if not o.ok]

    @property
    def points_delta(self) -> int:
        return sum(o.points_delta for o in self.outcomes if o.ok)

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "completion_date": self.completion_date.isoformat(),
            "all_succeeded": self.all_succeeded,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "points_delta": self.points_delta,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# ── Validation ───────────────────────────────────────────────────────────────


def _validate_entries(
    person_id: int,
    entries: list[dict],
    require_task_date: date | None,
    past_day: date | None = None,
) -> list[tuple[int, TaskInstance, CompletionStatus]]:
    if not entries:
        raise ValidationError("At least one completion is required")

    errors: dict[str, str] = {}
    wanted: list[tuple[int, CompletionStatus]] = []
    seen: set[int] = set()
    for idx, entry in enumerate(entries):
        raw_id = entry.get("task_id") if isinstance(entry, dict) else None
        try:
            task_id = int(raw_id)
        except (TypeError, ValueError):
            errors[f"entries[{idx}]"] = "task_id is required"
            continue
        if task_id in seen:
            errors[str(task_id)] = "task submitted more than once"
            continue
        seen.add(task_id)
        status = CompletionStatus.parse(entry.get("status"))
        if status is None:
            errors[str(task_id)] = f"status must be one of: {', '.join(sorted(COMPLETION_STATUSES))}"
            continue
        wanted.append((task_id, status))

    tasks = {}
    resolved: set[int] = set()
    if wanted:
        ids = [task_id for task_id, _ in wanted]
        tasks = {t.id: t for t in TaskInstance.query.filter(TaskInstance.id.in_(ids)).all()}
        if past_day is not None:
            resolved = set(db.session.execute(
                select(CompletionRecord.task_id).where(
                    CompletionRecord.person_id == person_id,
                    CompletionRecord.completion_date == past_day,
                    CompletionRecord.task_id.in_(ids),
                )
            ).scalars())

    for task_id, _ in wanted:
        task = tasks.get(task_id)
        if task is None:
            errors[str(task_id)] = "unknown task"
        elif task.assigned_to != person_id:
            errors[str(task_id)] = "task is not assigned to this person"
        elif require_task_date is not None and task.task_date not in (None, require_task_date):
            errors[str(task_id)] = f"task belongs to {task.task_date.isoformat()}, not {require_task_date.isoformat()}"
        elif past_day is not None and task.task_date != past_day:
            errors[str(task_id)] = f"only tasks dated {past_day.isoformat()} can be resolved for that day"
        elif past_day is not None and task_id in resolved:
            errors[str(task_id)] = f"task was already resolved for {past_day.isoformat()}"

    if errors:
        raise ValidationError("Invalid completion batch", details=errors)
    return [(task_id, tasks[task_id], status) for task_id, status in wanted]


# ── Writes ───────────────────────────────────────────────────────────────────


def _write_and_fold(person_id, task_id, status, points_earned, completion_date, overwrite=True) -> TaskOutcome:
    """Upsert the record and fold the ledger difference. Does not commit.

    With *overwrite* off an existing record is left untouched and reported
    as a conflict; past days are resolved once.
    """
    record = (
        CompletionRecord.query
        .filter_by(task_id=task_id, person_id=person_id, completion_date=completion_date)
        .with_for_update()
        .first()
    )
    if record is None:
        previous = None
        record = CompletionRecord(
            task_id=task_id,
            person_id=person_id,
            completion_date=completion_date,
            status=status.value,
            points_earned=points_earned,
        )
        db.session.add(record)
        created = True
    elif not overwrite:
        return TaskOutcome(
            task_id=task_id, status=status.value, outcome=OUTCOME_CONFLICT,
            error=f"already resolved for {completion_date.isoformat()}",
        )
    else:
        previous = (record.status, record.points_earned)
        record.status = status.value
        record.points_earned = points_earned
        created = False

    delta = scoring.ledger_delta(previous, (status, points_earned))
    scoring.fold(person_id, delta)
    return TaskOutcome(
        task_id=task_id,
        status=status.value,
        outcome=OUTCOME_OK,
        points_earned=points_earned,
        points_delta=delta.get("total_points", 0),
        created=created,
    )


def _record_one(person_id, task_id, task, status, completion_date, max_retries, overwrite=True) -> TaskOutcome:
    # task may be expired by an earlier commit; reading it can hit the store.
    attempt = 0
    while True:
        try:
            points_earned = scoring.score(task, status)
            outcome = _write_and_fold(person_id, task_id, status, points_earned, completion_date, overwrite)
            db.session.commit()
            return outcome
        except IntegrityError as exc:
            db.session.rollback()
            attempt += 1
            if attempt > max_retries:
                conflict = ConflictError(
                    "CompletionRecord",
                    "task_id,person_id,completion_date",
                    f"{task_id},{person_id},{completion_date.isoformat()}",
                )
                logger.warning("Completion write gave up after %d retries: %s (%s)", max_retries, conflict, exc.orig)
                return TaskOutcome(task_id=task_id, status=status.value, outcome=OUTCOME_CONFLICT, error=str(conflict))
            logger.info("Completion write collided task_id=%s person_id=%s, retry %d/%d",
                        task_id, person_id, attempt, max_retries)
        except OperationalError as exc:
            db.session.rollback()
            logger.error("Store unavailable writing completion task_id=%s: %s", task_id, exc.orig)
            unavailable = UnavailableError(f"Store unavailable while recording task {task_id}")
            return TaskOutcome(task_id=task_id, status=status.value, outcome=OUTCOME_UNAVAILABLE, error=str(unavailable))


def record_completions(
    person_id: int,
    entries: list[dict],
    completion_date: date | None = None,
    *,
    today: date | None = None,
    require_task_date: date | None = None,
) -> BatchResult:
    """Resolve a batch of the person's task instances for one day.

    Args:
        person_id:          The acting person (already authenticated).
        entries:            ``[{"task_id": int, "status": str}, ...]``.
        completion_date:    Day being resolved; defaults to today. A past day
                            only accepts its own unresolved instances;
                            future days are refused.
        today:              Override of the current day (tests, jobs).
        require_task_date:  When set, every task must belong to this day
                            (or be undated).

    Returns:
        BatchResult with one TaskOutcome per entry.

    Raises:
        NotFoundError:   unknown person.
        ValidationError: invalid batch; nothing was written.
    """
    today = today or local_today()
    completion_date = completion_date or today
    if completion_date > today:
        raise ValidationError(
            "Cannot record completions for a future day",
            details={"completion_date": completion_date.isoformat()},
        )
    if db.session.get(Person, person_id) is None:
        raise NotFoundError(resource="Person", resource_id=person_id)

    past_day = completion_date if completion_date < today else None
    pairs = _validate_entries(person_id, entries, require_task_date, past_day)
    max_retries = current_app.config.get("COMPLETION_MAX_RETRIES", 3)

    result = BatchResult(person_id=person_id, completion_date=completion_date)
    for task_id, task, status in pairs:
        result.outcomes.append(
            _record_one(person_id, task_id, task, status, completion_date, max_retries, overwrite=past_day is None)
        )

    if result.succeeded:
        from dailyscore.services.ranking import invalidate_leaderboard_cache
        invalidate_leaderboard_cache()

    logger.info(
        "Recorded completions person_id=%s date=%s ok=%d failed=%d delta=%+d",
        person_id, completion_date, len(result.succeeded), len(result.failed), result.points_delta,
    )
    return result


# ── Reads ────────────────────────────────────────────────────────────────────


def get_completions(person_id: int, completion_date: date) -> list[CompletionRecord]:
    """The person's CompletionRecords for one day."""
    return (
        CompletionRecord.query
        .filter_by(person_id=person_id, completion_date=completion_date)
        .order_by(CompletionRecord.task_id)
        .all()
    )


def daily_stats(person_id: int, day: date) -> dict:
    """Counts for the person's instances of *day*."""
    task_ids = {
        t.id for t in TaskInstance.query.filter_by(assigned_to=person_id, task_date=day).all()
    }
    records = [r for r in get_completions(person_id, day) if r.task_id in task_ids]
    counts = {s.value: 0 for s in CompletionStatus}
    for record in records:
        counts[record.status] = counts.get(record.status, 0) + 1
    return {
        "total": len(task_ids),
        "completed": counts[CompletionStatus.COMPLETED.value],
        "not_completed": counts[CompletionStatus.NOT_COMPLETED.value],
        "no_demand": counts[CompletionStatus.NO_DEMAND.value],
        "unresolved": len(task_ids) - len(records),
    }
