"""
Daily Score Engine
Person & Sector models.

Identity data is owned by the external identity provider; this core only
reads it (names for leaderboard/alert joins, sector for daily cloning).

Models:
    - Sector: organisational unit that owns a set of task templates
    - Person: an assignee of daily task instances
"""

from datetime import datetime, timezone

from dailyscore.models import db


class Sector(db.Model):
    __tablename__ = "sectors"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Sector {self.id}: {self.name}>"


class Person(db.Model):
    """A person who receives daily task instances and points."""

    __tablename__ = "persons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    avatar_url = db.Column(db.String(500), nullable=True)
    sector_id = db.Column(
        db.Integer, db.ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    sector = db.relationship("Sector")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "sector_id": self.sector_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Person {self.id}: {self.name}>"
