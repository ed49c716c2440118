"""
Daily Score Engine
Scheduled Jobs.

Jobs:
    - daily_task_cloning: materializes today's instances for every active person
    - missed_mandatory_alerts: alerts on mandatory instances left unresolved
    - ledger_reconciliation: rebuilds ledgers from completion records
"""

from __future__ import annotations

import logging
from typing import Any

from dailyscore.models import db
from dailyscore.models.person import Person
from dailyscore.services.scheduler_service import register_job
from dailyscore.utils.helpers import local_today

logger = logging.getLogger(__name__)


@register_job("daily_task_cloning", run_at="00:05")
def clone_daily_tasks(app) -> dict[str, Any]:
    """Clone today's task instances from sector templates for every active person."""
    from dailyscore.services import task_catalog

    today = local_today()
    results = {"date": today.isoformat(), "persons": 0, "instances": 0, "errors": 0}
    person_ids = [p.id for p in Person.query.filter_by(is_active=True).order_by(Person.id).all()]
    for person_id in person_ids:
        try:
            results["instances"] += len(task_catalog.clone_tasks_for_day(person_id, today))
            results["persons"] += 1
        except Exception as e:  # noqa: BLE001
            db.session.rollback()
            results["errors"] += 1
            logger.error("Cloning failed for person_id=%s: %s", person_id, e)
    return results


@register_job("missed_mandatory_alerts", run_at="00:15")
def generate_missed_mandatory_alerts(app) -> dict[str, Any]:
    """Create one admin alert per mandatory instance left unresolved past its day."""
    from dailyscore.services.alerts import AlertService

    return AlertService.generate_missed_mandatory_alerts(as_of=local_today())


@register_job("ledger_reconciliation", run_at="03:00")
def reconcile_ledgers(app) -> dict[str, Any]:
    """Recompute every points ledger from completion records and repair drift."""
    from dailyscore.services import scoring
    from dailyscore.services.ranking import invalidate_leaderboard_cache

    results = scoring.reconcile_all_ledgers()
    if results.get("repaired"):
        invalidate_leaderboard_cache()
    return results
