"""
Pending-Day Gate.

A person is *pending* while any TaskInstance dated before today has no
CompletionRecord for that day. While pending:
  - today's tasks cannot be submitted (PendingDaysError), and
  - the person is listed unranked on the leaderboard.

Regularization resolves every pending instance in one submission; the
recorder is called once per date group with that group's own date.

Eligibility is computed on every call and never stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby

from sqlalchemy import and_, select
from sqlalchemy.exc import OperationalError

from dailyscore.core.exceptions import (
    NotFoundError,
    PendingDaysError,
    UnavailableError,
    ValidationError,
)
from dailyscore.models import db
from dailyscore.models.completion import COMPLETION_STATUSES, CompletionRecord, CompletionStatus
from dailyscore.models.person import Person
from dailyscore.models.task import TaskInstance
from dailyscore.services import completion_recorder, task_catalog
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Eligibility types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PendingDay:
    """Unresolved instances of one past day."""
    task_date: date
    tasks: tuple[TaskInstance, ...]

    def to_dict(self) -> dict:
        return {
            "date": self.task_date.isoformat(),
            "tasks": [
                {
                    "task_id": t.id,
                    "task_title": t.title,
                    "task_date": t.task_date.isoformat(),
                    "criticality": t.criticality,
                    "points": t.points,
                    "is_mandatory": t.is_mandatory,
                }
                for t in self.tasks
            ],
        }


@dataclass(frozen=True)
class Active:
    is_pending = False

    def to_dict(self) -> dict:
        return {"state": "active", "is_pending": False, "pending_days": []}


@dataclass(frozen=True)
class PendingRegularization:
    days: tuple[PendingDay, ...]
    is_pending = True

    @property
    def dates(self) -> list[str]:
        return [d.task_date.isoformat() for d in self.days]

    def to_dict(self) -> dict:
        return {
            "state": "pending_regularization",
            "is_pending": True,
            "pending_days": [d.to_dict() for d in self.days],
        }


Eligibility = Active | PendingRegularization


@dataclass
class DayResult:
    task_date: date
    ok: bool
    batch: completion_recorder.BatchResult | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "date": self.task_date.isoformat(),
            "ok": self.ok,
            "result": self.batch.to_dict() if self.batch else None,
            "error": self.error,
        }


@dataclass
class RegularizationResult:
    person_id: int
    days: list[DayResult] = field(default_factory=list)
    still_pending: bool = False

    @property
    def all_succeeded(self) -> bool:
        return all(d.ok for d in self.days)

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "all_succeeded": self.all_succeeded,
            "still_pending": self.still_pending,
            "days": [d.to_dict() for d in self.days],
        }


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def unresolved_before(today: date, *columns):
    """SELECT of TaskInstances dated before *today* with no record for their day.

    Selects whole instances unless *columns* are given.
    """
    return (
        select(*(columns or (TaskInstance,)))
        .select_from(TaskInstance)
        .outerjoin(
            CompletionRecord,
            and_(
                CompletionRecord.task_id == TaskInstance.id,
                CompletionRecord.person_id == TaskInstance.assigned_to,
                CompletionRecord.completion_date == TaskInstance.task_date,
            ),
        )
        .where(
            TaskInstance.task_date.isnot(None),
            TaskInstance.task_date < today,
            CompletionRecord.id.is_(None),
        )
    )


def get_pending_instances(person_id: int, today: date | None = None) -> list[TaskInstance]:
    """Pending instances of a person, by task_date ascending then id."""
    today = today or local_today()
    stmt = (
        unresolved_before(today)
        .where(TaskInstance.assigned_to == person_id)
        .order_by(TaskInstance.task_date, TaskInstance.id)
    )
    return list(db.session.execute(stmt).scalars())


def group_pending_by_date(instances: list[TaskInstance]) -> list[PendingDay]:
    ordered = sorted(instances, key=lambda t: (t.task_date, t.id))
    return [
        PendingDay(task_date=day, tasks=tuple(tasks))
        for day, tasks in groupby(ordered, key=lambda t: t.task_date)
    ]


def has_pending(person_id: int, today: date | None = None) -> bool:
    today = today or local_today()
    stmt = unresolved_before(today).where(TaskInstance.assigned_to == person_id).limit(1)
    return db.session.execute(stmt).first() is not None


def pending_person_ids(today: date | None = None) -> set[int]:
    """Every person currently in pending state, in one query."""
    today = today or local_today()
    stmt = unresolved_before(today, TaskInstance.assigned_to).distinct()
    return set(db.session.execute(stmt).scalars())


def get_eligibility(person_id: int, today: date | None = None) -> Eligibility:
    days = group_pending_by_date(get_pending_instances(person_id, today))
    if days:
        return PendingRegularization(days=tuple(days))
    return Active()


def assert_can_act_today(person_id: int, today: date | None = None) -> None:
    """Raise PendingDaysError while the person has unresolved past days."""
    eligibility = get_eligibility(person_id, today)
    if eligibility.is_pending:
        raise PendingDaysError(person_id, eligibility.dates)


# ═════════════════════════════════════════════════════════════════════════════
# Flows
# ═════════════════════════════════════════════════════════════════════════════

def today_board(person_id: int, today: date | None = None) -> dict:
    """Everything the daily-task surface needs for *today*.

    Clones today's instances first. A pending person gets only the
    regularization view; today's tasks are withheld until it is cleared.
    """
    today = today or local_today()
    if db.session.get(Person, person_id) is None:
        raise NotFoundError(resource="Person", resource_id=person_id)

    task_catalog.clone_tasks_for_day(person_id, today)
    eligibility = get_eligibility(person_id, today)
    board = {"person_id": person_id, "date": today.isoformat(), **eligibility.to_dict()}
    if eligibility.is_pending:
        board["tasks"] = []
        board["stats"] = None
        return board

    completions = {c.task_id: c for c in completion_recorder.get_completions(person_id, today)}
    board["tasks"] = [
        {**t.to_dict(), "completion": completions[t.id].to_dict() if t.id in completions else None}
        for t in task_catalog.list_instances_for_day(person_id, today)
    ]
    board["stats"] = completion_recorder.daily_stats(person_id, today)
    return board


def submit_today(person_id: int, entries: list[dict], today: date | None = None):
    """Resolve today's instances. Refused while the person is pending."""
    today = today or local_today()
    assert_can_act_today(person_id, today)
    return completion_recorder.record_completions(
        person_id, entries, completion_date=today, today=today, require_task_date=today,
    )


def submit_regularization(person_id: int, entries: list[dict], today: date | None = None) -> RegularizationResult:
    """Resolve every pending instance, one recorder call per date group.

    Every pending instance needs a status; otherwise nothing is written.
    Failures are reported per date group.

    Raises:
        ValidationError: nothing pending, unknown/non-pending task, bad or
                         missing status.
    """
    today = today or local_today()
    if db.session.get(Person, person_id) is None:
        raise NotFoundError(resource="Person", resource_id=person_id)

    pending = get_pending_instances(person_id, today)
    if not pending:
        raise ValidationError("There are no pending days to regularize")

    by_id = {t.id: t for t in pending}
    statuses: dict[int, str] = {}
    errors: dict[str, object] = {}
    for entry in entries or []:
        try:
            task_id = int(entry.get("task_id"))
        except (AttributeError, TypeError, ValueError):
            errors["entries"] = "every entry needs a task_id"
            continue
        if task_id not in by_id:
            errors[str(task_id)] = "not a pending task of this person"
            continue
        status = entry.get("status")
        if CompletionStatus.parse(status) is None:
            errors[str(task_id)] = f"status must be one of: {', '.join(sorted(COMPLETION_STATUSES))}"
            continue
        statuses[task_id] = status

    missing = sorted(set(by_id) - set(statuses) - {int(k) for k in errors if k.isdigit()})
    if missing:
        errors["missing"] = missing
    if errors:
        raise ValidationError("Every pending task needs a status before submitting", details=errors)

    # Plain values: the recorder commits and expires the ORM objects.
    groups = [
        (day.task_date, [{"task_id": t.id, "status": statuses[t.id]} for t in day.tasks])
        for day in group_pending_by_date(pending)
    ]

    result = RegularizationResult(person_id=person_id)
    for task_date, day_entries in groups:
        try:
            batch = completion_recorder.record_completions(
                person_id, day_entries,
                completion_date=task_date, today=today, require_task_date=task_date,
            )
            result.days.append(DayResult(task_date=task_date, ok=batch.all_succeeded, batch=batch))
        except (ValidationError, UnavailableError) as exc:
            logger.warning("Regularization failed person_id=%s date=%s: %s", person_id, task_date, exc)
            result.days.append(DayResult(task_date=task_date, ok=False, error=str(exc)))
        except OperationalError as exc:
            db.session.rollback()
            logger.error("Store unavailable regularizing person_id=%s date=%s: %s", person_id, task_date, exc.orig)
            result.days.append(DayResult(task_date=task_date, ok=False, error="store unavailable"))

    try:
        result.still_pending = has_pending(person_id, today)
    except OperationalError as exc:
        db.session.rollback()
        logger.error("Store unavailable re-checking pending days person_id=%s: %s", person_id, exc.orig)
        result.still_pending = True
    logger.info(
        "Regularization person_id=%s days=%d ok=%s still_pending=%s",
        person_id, len(result.days), result.all_succeeded, result.still_pending,
    )
    return result
