"""
Daily Score Engine
Completion & points models.

Models:
    - CompletionRecord: one resolution of a TaskInstance per assignee per day
    - PointsLedger: per-person running totals, one row per person

The (task_id, person_id, completion_date) triple is unique at the database
level; the recorder relies on that constraint rather than on any
client-side coordination.
"""

from datetime import datetime, timezone
from enum import Enum

from dailyscore.models import db


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    NOT_COMPLETED = "not_completed"
    NO_DEMAND = "no_demand"

    @classmethod
    def parse(cls, value):
        """Return the matching member, or None for unknown/missing values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


COMPLETION_STATUSES = {s.value for s in CompletionStatus}

# Ledger counter column incremented for each status
STATUS_COUNTER_COLUMNS = {
    CompletionStatus.COMPLETED: "tasks_completed",
    CompletionStatus.NOT_COMPLETED: "tasks_not_completed",
    CompletionStatus.NO_DEMAND: "tasks_no_demand",
}


class CompletionRecord(db.Model):
    """Resolution of exactly one TaskInstance by its assignee on one day."""

    __tablename__ = "completion_records"
    __table_args__ = (
        db.UniqueConstraint("task_id", "person_id", "completion_date", name="uq_completion_task_person_day"),
        db.Index("ix_completion_person_date", "person_id", "completion_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("task_instances.id", ondelete="CASCADE"), nullable=False,
    )
    person_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False,
    )
    completion_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    task = db.relationship("TaskInstance")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "person_id": self.person_id,
            "completion_date": self.completion_date.isoformat() if self.completion_date else None,
            "status": self.status,
            "points_earned": self.points_earned,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CompletionRecord task={self.task_id} person={self.person_id} {self.completion_date}: {self.status}>"


class PointsLedger(db.Model):
    """
    Running aggregate of a person's points and outcome counts.

    Materialized lazily on the first completion. Mutated only through
    atomic increments (scoring.fold) or a full recompute.
    """

    __tablename__ = "points_ledger"

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    total_points = db.Column(db.Integer, nullable=False, default=0)
    tasks_completed = db.Column(db.Integer, nullable=False, default=0)
    tasks_not_completed = db.Column(db.Integer, nullable=False, default=0)
    tasks_no_demand = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    person = db.relationship("Person")

    def counters(self):
        return {
            "total_points": self.total_points,
            "tasks_completed": self.tasks_completed,
            "tasks_not_completed": self.tasks_not_completed,
            "tasks_no_demand": self.tasks_no_demand,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "person_id": self.person_id,
            **self.counters(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<PointsLedger person={self.person_id} total={self.total_points}>"
