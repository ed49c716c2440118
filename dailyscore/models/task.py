"""
Daily Score Engine
Task catalog models.

Models:
    - CriticalityPoints: editable criticality → default points table
    - TaskTemplate: recurring task definition owned by a sector
    - TaskInstance: one person's actionable copy of a task for one day

TaskInstance.points is resolved from CriticalityPoints when the instance is
created and never recomputed afterwards.
"""

from datetime import datetime, timezone

from dailyscore.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CRITICALITY_LEVELS = ("low", "medium", "high", "critical")
DEFAULT_CRITICALITY = "medium"


class CriticalityPoints(db.Model):
    """One row per criticality level."""

    __tablename__ = "criticality_points"

    id = db.Column(db.Integer, primary_key=True)
    criticality = db.Column(db.String(20), nullable=False, unique=True)
    default_points = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "criticality": self.criticality,
            "default_points": self.default_points,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CriticalityPoints {self.criticality}={self.default_points}>"


class TaskTemplate(db.Model):
    """
    Recurring task definition.

    Every active template of a sector is cloned once per day for each
    person of that sector.
    """

    __tablename__ = "task_templates"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    sector_id = db.Column(
        db.Integer, db.ForeignKey("sectors.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    criticality = db.Column(db.String(20), default=DEFAULT_CRITICALITY, nullable=False)
    is_mandatory = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "sector_id": self.sector_id,
            "criticality": self.criticality,
            "is_mandatory": self.is_mandatory,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<TaskTemplate {self.id}: {self.title[:40]}>"


class TaskInstance(db.Model):
    """
    A unit of work for one person on one day.

    Cloned instances are unique per (template, assignee, day); ad-hoc
    instances carry no template.
    """

    __tablename__ = "task_instances"
    __table_args__ = (
        db.UniqueConstraint("template_id", "assigned_to", "task_date", name="uq_task_instance_template_day"),
        db.Index("ix_task_instances_assignee_date", "assigned_to", "task_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    assigned_to = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False,
    )
    sector_id = db.Column(
        db.Integer, db.ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True,
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("task_templates.id", ondelete="SET NULL"), nullable=True,
    )
    criticality = db.Column(db.String(20), default=DEFAULT_CRITICALITY, nullable=False)
    is_mandatory = db.Column(db.Boolean, default=False, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0,
                       comment="Frozen at creation from criticality_points")
    task_date = db.Column(db.Date, nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    assignee = db.relationship("Person")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "sector_id": self.sector_id,
            "template_id": self.template_id,
            "criticality": self.criticality,
            "is_mandatory": self.is_mandatory,
            "points": self.points,
            "task_date": self.task_date.isoformat() if self.task_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TaskInstance {self.id}: {self.title[:40]} @ {self.task_date}>"
