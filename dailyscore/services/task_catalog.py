"""
Task Catalog service.

Creates TaskInstances (ad-hoc or cloned from sector templates) and answers
per-day instance lookups.

Rules:
  - points are frozen at creation from the criticality table.
  - clone_tasks_for_day is idempotent: one instance per
    (template, person, day), guarded by a unique constraint.
  - creating a back-dated instance drops cached leaderboards, since the
    assignee may have just become pending.
  - db.session.commit() happens only in service modules.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from dailyscore.core.exceptions import NotFoundError, ValidationError
from dailyscore.models import db
from dailyscore.models.person import Person
from dailyscore.models.task import CRITICALITY_LEVELS, DEFAULT_CRITICALITY, TaskInstance, TaskTemplate
from dailyscore.services import scoring
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)


def _require_person(person_id: int) -> Person:
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(resource="Person", resource_id=person_id)
    return person


def get_task(task_id: int) -> TaskInstance:
    task = db.session.get(TaskInstance, task_id)
    if task is None:
        raise NotFoundError(resource="TaskInstance", resource_id=task_id)
    return task


def create_task_instance(
    *,
    title: str,
    assigned_to: int,
    criticality: str = DEFAULT_CRITICALITY,
    is_mandatory: bool = False,
    task_date: date | None = None,
    description: str = "",
    sector_id: int | None = None,
) -> TaskInstance:
    """Create an ad-hoc TaskInstance for one person.

    Raises:
        ValidationError: empty title or unknown criticality.
        NotFoundError: unknown assignee.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    if criticality not in CRITICALITY_LEVELS:
        raise ValidationError(f"criticality must be one of: {', '.join(CRITICALITY_LEVELS)}")
    person = _require_person(assigned_to)

    task = TaskInstance(
        title=title,
        description=description or "",
        assigned_to=person.id,
        sector_id=sector_id if sector_id is not None else person.sector_id,
        criticality=criticality,
        is_mandatory=bool(is_mandatory),
        points=scoring.points_for_criticality(criticality),
        task_date=task_date,
    )
    db.session.add(task)
    db.session.commit()
    logger.info("TaskInstance created id=%s person_id=%s points=%s", task.id, person.id, task.points)
    _invalidate_if_back_dated(task_date)
    return task


def _invalidate_if_back_dated(task_date: date | None) -> None:
    """A new instance dated before today can make its assignee pending."""
    if task_date is not None and task_date < local_today():
        from dailyscore.services.ranking import invalidate_leaderboard_cache
        invalidate_leaderboard_cache()


def clone_tasks_for_day(person_id: int, target_date: date) -> list[int]:
    """Materialize the day's instances for a person from their sector templates.

    Safe to call repeatedly: templates already cloned for the day are skipped.
    Returns the ids of all template-backed instances the person has that day.
    """
    person = _require_person(person_id)
    if person.sector_id is None:
        return _template_instance_ids(person_id, target_date)

    templates = (
        TaskTemplate.query.filter_by(sector_id=person.sector_id, is_active=True)
        .order_by(TaskTemplate.id)
        .all()
    )
    already = set(
        db.session.execute(
            select(TaskInstance.template_id).where(
                TaskInstance.assigned_to == person_id,
                TaskInstance.task_date == target_date,
                TaskInstance.template_id.isnot(None),
            )
        ).scalars()
    )

    missing = [t for t in templates if t.id not in already]
    if missing:
        table = scoring.criticality_table()
        for template in missing:
            db.session.add(TaskInstance(
                title=template.title,
                description=template.description or "",
                assigned_to=person_id,
                sector_id=template.sector_id,
                template_id=template.id,
                criticality=template.criticality,
                is_mandatory=template.is_mandatory,
                points=table.get(template.criticality, 0),
                task_date=target_date,
            ))
        try:
            db.session.commit()
            logger.info("Cloned %d task(s) for person_id=%s date=%s", len(missing), person_id, target_date)
            _invalidate_if_back_dated(target_date)
        except IntegrityError:
            # A concurrent clone for the same person/day won; its rows are what we want.
            db.session.rollback()
            logger.info("Concurrent clone detected person_id=%s date=%s", person_id, target_date)

    return _template_instance_ids(person_id, target_date)


def _template_instance_ids(person_id: int, target_date: date) -> list[int]:
    return list(db.session.execute(
        select(TaskInstance.id).where(
            TaskInstance.assigned_to == person_id,
            TaskInstance.task_date == target_date,
            TaskInstance.template_id.isnot(None),
        ).order_by(TaskInstance.id)
    ).scalars())


def list_instances_for_day(person_id: int, day: date) -> list[TaskInstance]:
    """All instances (cloned and ad-hoc) assigned to a person for a day, stable order."""
    return (
        TaskInstance.query
        .filter(TaskInstance.assigned_to == person_id, TaskInstance.task_date == day)
        .order_by(TaskInstance.id)
        .all()
    )
