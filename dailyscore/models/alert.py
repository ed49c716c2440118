"""
Daily Score Engine
Admin alert model.

Models:
    - AdminAlert: notification about a mandatory task instance left
      unresolved past its day, with read tracking
"""

from datetime import datetime, timezone

from dailyscore.models import db


class AdminAlert(db.Model):
    """
    Administrative alert entity.

    One record per unresolved mandatory task instance per day.
    """

    __tablename__ = "admin_alerts"
    __table_args__ = (
        db.UniqueConstraint("task_id", "alert_date", name="uq_admin_alert_task_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("task_instances.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    person_id = db.Column(
        db.Integer, db.ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    message = db.Column(db.Text, nullable=False)
    alert_date = db.Column(db.Date, nullable=False)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    task = db.relationship("TaskInstance")
    person = db.relationship("Person")

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def mark_unread(self):
        self.is_read = False
        self.read_at = None

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "person_id": self.person_id,
            "message": self.message,
            "alert_date": self.alert_date.isoformat() if self.alert_date else None,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "task": {"title": self.task.title} if self.task else None,
            "person": {"name": self.person.name} if self.person else None,
        }

    def __repr__(self):
        return f"<AdminAlert {self.id}: task={self.task_id} {self.alert_date}>"
