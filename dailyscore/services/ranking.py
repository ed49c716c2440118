"""
Ranking Aggregator.

Builds the leaderboard from PointsLedger rows:
  - active persons are sorted by total points (desc) and ranked 1..n
  - pending persons follow, unranked, flagged is_pending
  - ties on total points are broken by person name, then person id

The leaderboard is recomputable from store state at any time; the cache is
a latency aid invalidated on every ledger write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from flask import current_app

from dailyscore.models import db
from dailyscore.models.completion import PointsLedger
from dailyscore.models.person import Person
from dailyscore.services import cache_service, pending_gate
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)

CACHE_PREFIX = "leaderboard:"
MEDALS = {1: "gold", 2: "silver", 3: "bronze"}


def completion_rate(completed: int, not_completed: int) -> int:
    """Whole-number percentage of completed over decided tasks, half rounded up."""
    decided = completed + not_completed
    if decided <= 0:
        return 0
    return (200 * completed + decided) // (2 * decided)


@dataclass
class LeaderboardEntry:
    person_id: int
    name: str
    avatar_url: str | None
    total_points: int
    tasks_completed: int
    tasks_not_completed: int
    tasks_no_demand: int
    is_pending: bool
    rank: int | None = None

    @property
    def completion_rate(self) -> int:
        return completion_rate(self.tasks_completed, self.tasks_not_completed)

    @property
    def medal(self) -> str | None:
        return MEDALS.get(self.rank) if self.rank else None

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "person": {"id": self.person_id, "name": self.name, "avatar_url": self.avatar_url},
            "total_points": self.total_points,
            "tasks_completed": self.tasks_completed,
            "tasks_not_completed": self.tasks_not_completed,
            "tasks_no_demand": self.tasks_no_demand,
            "completion_rate": self.completion_rate,
            "is_pending": self.is_pending,
            "rank": self.rank,
            "medal": self.medal,
        }


def build_leaderboard(today: date | None = None) -> list[LeaderboardEntry]:
    """Active entries ranked first, then pending entries without a rank."""
    rows = (
        db.session.query(PointsLedger, Person)
        .join(Person, Person.id == PointsLedger.person_id)
        .all()
    )
    pending_ids = pending_gate.pending_person_ids(today)

    entries = [
        LeaderboardEntry(
            person_id=person.id,
            name=person.name,
            avatar_url=person.avatar_url,
            total_points=ledger.total_points,
            tasks_completed=ledger.tasks_completed,
            tasks_not_completed=ledger.tasks_not_completed,
            tasks_no_demand=ledger.tasks_no_demand,
            is_pending=person.id in pending_ids,
        )
        for ledger, person in rows
    ]

    active = sorted(
        (e for e in entries if not e.is_pending),
        key=lambda e: (-e.total_points, e.name.casefold(), e.person_id),
    )
    pending = sorted(
        (e for e in entries if e.is_pending),
        key=lambda e: (-e.total_points, e.person_id),
    )
    for index, entry in enumerate(active):
        entry.rank = index + 1
    return active + pending


def _leaderboard_dicts(today: date) -> list[dict]:
    ttl = current_app.config.get("LEADERBOARD_CACHE_TTL", 0)
    loader = lambda: [e.to_dict() for e in build_leaderboard(today)]  # noqa: E731
    if ttl <= 0:
        return loader()
    return cache_service.get_cached(f"{CACHE_PREFIX}{today.isoformat()}", ttl=ttl, loader=loader)


def leaderboard_payload(person_id: int | None = None, today: date | None = None) -> dict:
    """Serialized leaderboard plus the caller's own entry."""
    today = today or local_today()
    entries = _leaderboard_dicts(today)
    current = next((e for e in entries if e["person_id"] == person_id), None) if person_id else None
    return {
        "date": today.isoformat(),
        "entries": entries,
        "active_count": sum(1 for e in entries if not e["is_pending"]),
        "pending_count": sum(1 for e in entries if e["is_pending"]),
        "current": current,
    }


def entry_for_person(person_id: int, today: date | None = None) -> LeaderboardEntry | None:
    return next((e for e in build_leaderboard(today) if e.person_id == person_id), None)


def invalidate_leaderboard_cache() -> None:
    cache_service.delete_prefix(CACHE_PREFIX)
