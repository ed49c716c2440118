"""
Scoring Calculator.

Maps a completion status to a signed point delta and folds deltas into the
per-person PointsLedger.

Rules:
  - completed      → +task.points
  - not_completed  → -task.points
  - no_demand      →  0
  - TaskInstance.points is read from the criticality table once, at
    instance creation. Editing the table never rescores existing instances.
  - The fold is a single server-side ``UPDATE ... SET col = col + :inc``;
    application code never does read-modify-write on ledger totals.
  - fold() does not commit. The caller commits the record write and the fold
    in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select, update

from dailyscore.core.exceptions import ValidationError
from dailyscore.models import db
from dailyscore.models.completion import (
    STATUS_COUNTER_COLUMNS,
    CompletionRecord,
    CompletionStatus,
    PointsLedger,
)
from dailyscore.models.task import CRITICALITY_LEVELS, CriticalityPoints

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = ("total_points", "tasks_completed", "tasks_not_completed", "tasks_no_demand")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Criticality → points table ───────────────────────────────────────────────


def seed_criticality_points() -> int:
    """Create missing criticality rows from DEFAULT_CRITICALITY_POINTS.

    Existing rows are never overwritten. Returns the number of rows created.
    """
    defaults = current_app.config.get("DEFAULT_CRITICALITY_POINTS", {})
    existing = set(db.session.execute(select(CriticalityPoints.criticality)).scalars())
    created = 0
    for level in CRITICALITY_LEVELS:
        if level in existing:
            continue
        db.session.add(CriticalityPoints(criticality=level, default_points=int(defaults.get(level, 0))))
        created += 1
    if created:
        db.session.commit()
        logger.info("Seeded %d criticality point rows", created)
    return created


def criticality_table() -> dict[str, int]:
    """Return the current ``{criticality: points}`` table, seeding it lazily."""
    rows = CriticalityPoints.query.all()
    if len(rows) < len(CRITICALITY_LEVELS):
        seed_criticality_points()
        rows = CriticalityPoints.query.all()
    return {row.criticality: row.default_points for row in rows}


def update_criticality_points(updates: dict) -> dict[str, int]:
    """Edit the table. Only future TaskInstances are affected.

    Raises:
        ValidationError: unknown criticality or a negative/non-integer value.
    """
    errors = {}
    clean = {}
    for level, value in (updates or {}).items():
        if level not in CRITICALITY_LEVELS:
            errors[level] = f"criticality must be one of: {', '.join(CRITICALITY_LEVELS)}"
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors[level] = "points must be a non-negative integer"
            continue
        clean[level] = value
    if errors:
        raise ValidationError("Invalid criticality points", details=errors)
    if not clean:
        raise ValidationError("No criticality points supplied")

    criticality_table()  # make sure every row exists
    for row in CriticalityPoints.query.filter(CriticalityPoints.criticality.in_(clean)).all():
        if row.default_points != clean[row.criticality]:
            logger.info("Criticality %s points %s -> %s", row.criticality, row.default_points, clean[row.criticality])
            row.default_points = clean[row.criticality]
    db.session.commit()
    return criticality_table()


def points_for_criticality(criticality: str) -> int:
    """Look up the points a new TaskInstance of this criticality is worth."""
    if criticality not in CRITICALITY_LEVELS:
        raise ValidationError(
            f"criticality must be one of: {', '.join(CRITICALITY_LEVELS)}",
            details={"criticality": criticality},
        )
    return criticality_table().get(criticality, 0)


# ── Scoring ──────────────────────────────────────────────────────────────────


def score(task, status) -> int:
    """Signed points for resolving *task* with *status*."""
    parsed = CompletionStatus.parse(status)
    if parsed is None:
        raise ValidationError(f"Unknown completion status: {status!r}")
    points = task.points or 0
    if parsed is CompletionStatus.COMPLETED:
        return points
    if parsed is CompletionStatus.NOT_COMPLETED:
        return -points
    return 0


def ledger_delta(previous, current) -> dict[str, int]:
    """Column increments that move a ledger from *previous* to *current*.

    Both arguments are ``(status, points_earned)`` tuples, or None when no
    record exists on that side. The prior contribution is reversed before
    the new one is applied. Zero increments are omitted.
    """
    delta = dict.fromkeys(LEDGER_COLUMNS, 0)
    if previous is not None:
        status, points = previous
        delta["total_points"] -= points
        delta[STATUS_COUNTER_COLUMNS[CompletionStatus(status)]] -= 1
    if current is not None:
        status, points = current
        delta["total_points"] += points
        delta[STATUS_COUNTER_COLUMNS[CompletionStatus(status)]] += 1
    return {col: inc for col, inc in delta.items() if inc}


def fold(person_id: int, delta: dict[str, int]) -> None:
    """Apply *delta* to the person's ledger with an atomic increment.

    Inserts the ledger row on the person's first completion. A concurrent
    first insert surfaces as IntegrityError for the caller to retry.
    """
    if not delta:
        return
    values = {col: getattr(PointsLedger, col) + inc for col, inc in delta.items()}
    values["updated_at"] = _utcnow()
    result = db.session.execute(
        update(PointsLedger)
        .where(PointsLedger.person_id == person_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return

    ledger = PointsLedger(person_id=person_id, **dict.fromkeys(LEDGER_COLUMNS, 0))
    for col, inc in delta.items():
        setattr(ledger, col, inc)
    db.session.add(ledger)
    db.session.flush()
    logger.debug("Materialized points ledger for person_id=%s", person_id)


# ── Reconciliation ───────────────────────────────────────────────────────────


def _totals_from_records(person_id: int) -> dict[str, int]:
    rows = db.session.execute(
        select(
            CompletionRecord.status,
            func.count(CompletionRecord.id),
            func.coalesce(func.sum(CompletionRecord.points_earned), 0),
        )
        .where(CompletionRecord.person_id == person_id)
        .group_by(CompletionRecord.status)
    ).all()
    totals = dict.fromkeys(LEDGER_COLUMNS, 0)
    for status, count, points in rows:
        parsed = CompletionStatus.parse(status)
        if parsed is None:
            logger.warning("Ignoring record with unknown status %r person_id=%s", status, person_id)
            continue
        totals[STATUS_COUNTER_COLUMNS[parsed]] += count
        totals["total_points"] += int(points)
    return totals


def recompute_ledger(person_id: int, *, commit: bool = True) -> dict:
    """Rebuild a person's ledger from all of their CompletionRecords.

    Returns:
        {"person_id", "before", "after", "drifted"}; ``before`` is None when
        no ledger row existed.
    """
    totals = _totals_from_records(person_id)
    ledger = PointsLedger.query.filter_by(person_id=person_id).first()
    before = ledger.counters() if ledger else None

    if ledger is None:
        has_records = any(totals[col] for col in LEDGER_COLUMNS[1:])
        if not has_records:
            return {"person_id": person_id, "before": None, "after": None, "drifted": False}
        ledger = PointsLedger(person_id=person_id)
        db.session.add(ledger)
    for col, value in totals.items():
        setattr(ledger, col, value)

    drifted = before != totals
    if drifted:
        logger.warning("Ledger drift repaired person_id=%s before=%s after=%s", person_id, before, totals)
    if commit:
        db.session.commit()
    return {"person_id": person_id, "before": before, "after": totals, "drifted": drifted}


def reconcile_all_ledgers() -> dict:
    """Recompute every ledger (and materialize missing ones).

    Returns:
        {"checked": int, "repaired": [person_id, ...]}
    """
    person_ids = set(db.session.execute(select(CompletionRecord.person_id).distinct()).scalars())
    person_ids |= set(db.session.execute(select(PointsLedger.person_id)).scalars())

    repaired = []
    for person_id in sorted(person_ids):
        result = recompute_ledger(person_id, commit=False)
        if result["drifted"]:
            repaired.append(person_id)
    db.session.commit()
    logger.info("Ledger reconciliation checked=%d repaired=%d", len(person_ids), len(repaired))
    return {"checked": len(person_ids), "repaired": repaired}
