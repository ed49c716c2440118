"""
Daily Score Engine
Alert Service.

Creates AdminAlerts for mandatory task instances left unresolved past their
day and serves the administrative inbox (list, read/unread, delete).

Inbox mutations are idempotent: acting on an unknown, already-read or
already-deleted alert is a successful no-op.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from dailyscore.models import db
from dailyscore.models.alert import AdminAlert
from dailyscore.models.person import Person
from dailyscore.models.task import TaskInstance
from dailyscore.services.pending_gate import unresolved_before
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)


def missed_task_message(task, person_name):
    return (
        f'Mandatory task "{task.title}" was not resolved by {person_name} '
        f"on {task.task_date.isoformat()}."
    )


class AlertService:
    """Stateless service class for admin alert operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, task, message=None, alert_date=None):
        """
        Create one alert for a task instance and its assignee.

        At most one alert exists per (task, alert_date); asking again returns
        the existing one unchanged.

        Returns:
            The AdminAlert (already committed).
        """
        alert_date = alert_date or task.task_date or local_today()
        existing = AdminAlert.query.filter_by(task_id=task.id, alert_date=alert_date).first()
        if existing is not None:
            return existing

        alert = AdminAlert(
            task_id=task.id,
            person_id=task.assigned_to,
            message=message or missed_task_message(task, task.assignee.name if task.assignee else "assignee"),
            alert_date=alert_date,
        )
        db.session.add(alert)
        try:
            db.session.commit()
        except IntegrityError:
            # Inserted concurrently between the lookup and the commit.
            db.session.rollback()
            logger.info("Alert already exists task_id=%s date=%s", task.id, alert_date)
            return AdminAlert.query.filter_by(task_id=task.id, alert_date=alert_date).one()
        return alert

    @staticmethod
    def generate_missed_mandatory_alerts(as_of=None):
        """
        Alert on every mandatory instance dated before *as_of* that has no
        completion for its day and no alert yet.

        Returns:
            {"scanned": int, "created": int}
        """
        as_of = as_of or local_today()
        stmt = (
            unresolved_before(as_of, TaskInstance, Person.name)
            .join(Person, Person.id == TaskInstance.assigned_to)
            .outerjoin(
                AdminAlert,
                and_(AdminAlert.task_id == TaskInstance.id, AdminAlert.alert_date == TaskInstance.task_date),
            )
            .where(TaskInstance.is_mandatory.is_(True), AdminAlert.id.is_(None))
            .order_by(TaskInstance.task_date, TaskInstance.id)
        )
        rows = db.session.execute(stmt).all()

        for task, person_name in rows:
            db.session.add(AdminAlert(
                task_id=task.id,
                person_id=task.assigned_to,
                message=missed_task_message(task, person_name),
                alert_date=task.task_date,
            ))
        try:
            db.session.commit()
        except IntegrityError:
            # Another run inserted some of the same alerts; the next run picks up the rest.
            db.session.rollback()
            logger.warning("Concurrent alert generation detected as_of=%s", as_of)
            return {"scanned": len(rows), "created": 0}

        logger.info("Missed mandatory alerts as_of=%s created=%d", as_of, len(rows))
        return {"scanned": len(rows), "created": len(rows)}

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_alerts(limit=None, unread_only=False):
        """Alerts newest first, with task title and person name loaded."""
        limit = limit or current_app.config.get("ALERT_LIST_LIMIT", 50)
        q = AdminAlert.query.options(joinedload(AdminAlert.task), joinedload(AdminAlert.person))
        if unread_only:
            q = q.filter(AdminAlert.is_read.is_(False))
        return q.order_by(AdminAlert.created_at.desc(), AdminAlert.id.desc()).limit(limit).all()

    @staticmethod
    def unread_count():
        return AdminAlert.query.filter(AdminAlert.is_read.is_(False)).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(alert_id):
        """Mark a single alert as read. Unknown ids return None."""
        alert = db.session.get(AdminAlert, alert_id)
        if alert and not alert.is_read:
            alert.mark_read()
            db.session.commit()
        return alert

    @staticmethod
    def mark_unread(alert_id):
        alert = db.session.get(AdminAlert, alert_id)
        if alert and alert.is_read:
            alert.mark_unread()
            db.session.commit()
        return alert

    @staticmethod
    def mark_all_read():
        """Mark every unread alert as read. Returns the number changed."""
        now = datetime.now(timezone.utc)
        count = (
            AdminAlert.query.filter(AdminAlert.is_read.is_(False))
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    @staticmethod
    def delete(alert_id):
        """Delete an alert. Returns False when it was already gone."""
        alert = db.session.get(AdminAlert, alert_id)
        if alert is None:
            return False
        db.session.delete(alert)
        db.session.commit()
        logger.info("Admin alert deleted id=%s", alert_id)
        return True
