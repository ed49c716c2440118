"""
Tests for the pending-day gate: eligibility, today's board and
regularization.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from dailyscore.core.exceptions import PendingDaysError, ValidationError
from dailyscore.models.completion import CompletionRecord, PointsLedger
from dailyscore.services import completion_recorder, pending_gate
from dailyscore.services.pending_gate import Active, PendingRegularization


@pytest.fixture()
def two_yesterday_three_today(make_person, make_task, today, yesterday):
    person = make_person()
    old = [make_task(person, title=f"Old {i}", task_date=yesterday) for i in range(2)]
    new = [make_task(person, title=f"New {i}", task_date=today) for i in range(3)]
    return person, old, new


class TestEligibility:
    def test_no_tasks_is_active(self, make_person, today):
        eligibility = pending_gate.get_eligibility(make_person().id, today)
        assert isinstance(eligibility, Active)
        assert eligibility.is_pending is False

    def test_yesterday_unresolved_groups_under_yesterday(self, two_yesterday_three_today, today, yesterday):
        person, old, _ = two_yesterday_three_today

        eligibility = pending_gate.get_eligibility(person.id, today)

        assert isinstance(eligibility, PendingRegularization)
        assert len(eligibility.days) == 1
        day = eligibility.days[0]
        assert day.task_date == yesterday
        assert [t.id for t in day.tasks] == [t.id for t in old]
        assert eligibility.dates == [yesterday.isoformat()]

    def test_today_tasks_are_not_actionable_while_pending(self, two_yesterday_three_today, today):
        person, _, new = two_yesterday_three_today

        with pytest.raises(PendingDaysError) as exc_info:
            pending_gate.submit_today(person.id, [{"task_id": new[0].id, "status": "completed"}], today)

        assert exc_info.value.pending_dates == [(today - timedelta(days=1)).isoformat()]
        assert CompletionRecord.query.count() == 0

    def test_record_for_another_day_does_not_resolve(self, make_person, make_task, today, yesterday):
        person = make_person()
        task = make_task(person, task_date=yesterday)
        completion_recorder.record_completions(
            person.id, [{"task_id": task.id, "status": "completed"}], completion_date=today, today=today,
        )
        assert pending_gate.has_pending(person.id, today) is True

    def test_undated_tasks_never_pend(self, make_person, make_task, today):
        person = make_person()
        make_task(person, task_date=None)
        assert pending_gate.has_pending(person.id, today) is False

    def test_pending_groups_are_date_ascending(self, make_person, make_task, today):
        person = make_person()
        make_task(person, title="Late", task_date=today - timedelta(days=1))
        make_task(person, title="Early", task_date=today - timedelta(days=3))

        days = pending_gate.get_eligibility(person.id, today).days
        assert [d.task_date for d in days] == [today - timedelta(days=3), today - timedelta(days=1)]

    def test_pending_person_ids_is_set_based(self, make_person, make_task, today, yesterday):
        pending = make_person("Pending")
        active = make_person("Active")
        make_task(pending, task_date=yesterday)
        make_task(active, task_date=today)

        assert pending_gate.pending_person_ids(today) == {pending.id}


class TestTodayBoard:
    def test_pending_person_sees_only_regularization(self, two_yesterday_three_today, today):
        person, _, _ = two_yesterday_three_today

        board = pending_gate.today_board(person.id, today)

        assert board["is_pending"] is True
        assert board["state"] == "pending_regularization"
        assert board["tasks"] == []
        assert len(board["pending_days"][0]["tasks"]) == 2

    def test_active_person_gets_cloned_tasks_with_status(
        self, make_sector, make_person, make_template, today,
    ):
        sector = make_sector()
        person = make_person(sector=sector)
        make_template(sector, title="Open store")
        make_template(sector, title="Close store")

        board = pending_gate.today_board(person.id, today)
        first = board["tasks"][0]
        pending_gate.submit_today(person.id, [{"task_id": first["id"], "status": "completed"}], today)
        board = pending_gate.today_board(person.id, today)

        assert board["is_pending"] is False
        assert [t["title"] for t in board["tasks"]] == ["Open store", "Close store"]
        assert board["tasks"][0]["completion"]["status"] == "completed"
        assert board["tasks"][1]["completion"] is None
        assert board["stats"]["completed"] == 1
        assert board["stats"]["unresolved"] == 1


class TestRegularization:
    def test_resolving_all_pending_unlocks_today(self, two_yesterday_three_today, today, yesterday):
        person, old, new = two_yesterday_three_today

        result = pending_gate.submit_regularization(person.id, [
            {"task_id": old[0].id, "status": "completed"},
            {"task_id": old[1].id, "status": "no_demand"},
        ], today)

        assert result.all_succeeded
        assert result.still_pending is False
        assert [d.task_date for d in result.days] == [yesterday]
        records = CompletionRecord.query.order_by(CompletionRecord.task_id).all()
        assert {r.completion_date for r in records} == {yesterday}

        batch = pending_gate.submit_today(person.id, [{"task_id": new[0].id, "status": "completed"}], today)
        assert batch.all_succeeded

    def test_each_group_uses_its_own_date(self, make_person, make_task, today):
        person = make_person()
        d1 = today - timedelta(days=2)
        d2 = today - timedelta(days=1)
        a = make_task(person, title="A", task_date=d1, criticality="high")
        b = make_task(person, title="B", task_date=d2, criticality="low")

        result = pending_gate.submit_regularization(person.id, [
            {"task_id": b.id, "status": "not_completed"},
            {"task_id": a.id, "status": "completed"},
        ], today)

        assert [d.task_date for d in result.days] == [d1, d2]
        by_task = {r.task_id: r.completion_date for r in CompletionRecord.query.all()}
        assert by_task == {a.id: d1, b.id: d2}
        assert PointsLedger.query.filter_by(person_id=person.id).one().total_points == 15

    def test_missing_status_writes_nothing(self, two_yesterday_three_today, today):
        person, old, _ = two_yesterday_three_today

        with pytest.raises(ValidationError) as exc_info:
            pending_gate.submit_regularization(person.id, [{"task_id": old[0].id, "status": "completed"}], today)

        assert exc_info.value.details["missing"] == [old[1].id]
        assert CompletionRecord.query.count() == 0

    def test_rejects_non_pending_task(self, two_yesterday_three_today, today):
        person, old, new = two_yesterday_three_today
        with pytest.raises(ValidationError):
            pending_gate.submit_regularization(person.id, [
                {"task_id": old[0].id, "status": "completed"},
                {"task_id": old[1].id, "status": "completed"},
                {"task_id": new[0].id, "status": "completed"},
            ], today)

    def test_nothing_pending(self, make_person, today):
        with pytest.raises(ValidationError):
            pending_gate.submit_regularization(make_person().id, [{"task_id": 1, "status": "completed"}], today)

    def test_failed_group_is_reported_not_raised(self, make_person, make_task, today, monkeypatch):
        person = make_person()
        d1 = today - timedelta(days=2)
        d2 = today - timedelta(days=1)
        a = make_task(person, title="A", task_date=d1)
        b = make_task(person, title="B", task_date=d2)
        real = completion_recorder.record_completions

        def fail_second_day(person_id, entries, completion_date=None, **kwargs):
            if completion_date == d2:
                raise ValidationError("store rejected the day")
            return real(person_id, entries, completion_date, **kwargs)

        monkeypatch.setattr(completion_recorder, "record_completions", fail_second_day)

        result = pending_gate.submit_regularization(person.id, [
            {"task_id": a.id, "status": "completed"},
            {"task_id": b.id, "status": "completed"},
        ], today)

        assert [d.ok for d in result.days] == [True, False]
        assert result.all_succeeded is False
        assert result.still_pending is True
        assert pending_gate.get_eligibility(person.id, today).dates == [d2.isoformat()]

    def test_store_outage_in_later_group_is_reported(self, make_person, make_task, today, monkeypatch):
        person = make_person()
        d1 = today - timedelta(days=2)
        d2 = today - timedelta(days=1)
        a = make_task(person, title="A", task_date=d1)
        b = make_task(person, title="B", task_date=d2)
        real = completion_recorder.record_completions

        def outage_on_second_day(person_id, entries, completion_date=None, **kwargs):
            if completion_date == d2:
                raise OperationalError("SELECT completion_records", {}, Exception("server closed the connection"))
            return real(person_id, entries, completion_date, **kwargs)

        monkeypatch.setattr(completion_recorder, "record_completions", outage_on_second_day)

        result = pending_gate.submit_regularization(person.id, [
            {"task_id": a.id, "status": "completed"},
            {"task_id": b.id, "status": "completed"},
        ], today)

        assert [d.ok for d in result.days] == [True, False]
        assert result.days[1].error == "store unavailable"
        assert result.still_pending is True
        assert CompletionRecord.query.one().task_id == a.id

    def test_outage_rechecking_pending_assumes_still_pending(self, make_person, make_task, today, monkeypatch):
        person = make_person()
        a = make_task(person, task_date=today - timedelta(days=1))

        def down(*args, **kwargs):
            raise OperationalError("SELECT task_instances", {}, Exception("server closed the connection"))

        monkeypatch.setattr(pending_gate, "has_pending", down)

        result = pending_gate.submit_regularization(person.id, [{"task_id": a.id, "status": "completed"}], today)

        assert result.all_succeeded
        assert result.still_pending is True
