"""
HTTP API tests: routing, identity, status-code mapping and payload shapes.
"""

from datetime import timedelta

import pytest

from dailyscore.models.completion import PointsLedger
from dailyscore.services.jwt_service import generate_access_token
from dailyscore.utils.helpers import local_today


@pytest.fixture()
def real_today():
    return local_today()


@pytest.fixture()
def admin(make_person):
    return make_person("Admin")


# ═════════════════════════════════════════════════════════════════════════════
# Identity
# ═════════════════════════════════════════════════════════════════════════════


class TestIdentity:
    def test_missing_identity_is_401(self, client):
        res = client.get("/api/v1/daily-tasks")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_bearer_token(self, client, make_person):
        person = make_person()
        token = generate_access_token(person.id, roles=[])
        res = client.get("/api/v1/daily-tasks", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        assert res.get_json()["person_id"] == person.id

    def test_admin_role_from_token(self, client, admin):
        token = generate_access_token(admin.id, roles=["admin"])
        res = client.get("/api/v1/admin/alerts", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200

    def test_invalid_token_is_ignored(self, client):
        res = client.get("/api/v1/daily-tasks", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_admin_routes_need_admin(self, client, make_person, auth_headers):
        person = make_person()
        res = client.get("/api/v1/admin/alerts", headers=auth_headers(person.id))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# Daily tasks
# ═════════════════════════════════════════════════════════════════════════════


class TestDailyTasks:
    def test_board_clones_templates(self, client, make_sector, make_person, make_template, auth_headers):
        sector = make_sector()
        person = make_person(sector=sector)
        make_template(sector, title="Open store")

        res = client.get("/api/v1/daily-tasks", headers=auth_headers(person.id))

        data = res.get_json()
        assert res.status_code == 200
        assert data["is_pending"] is False
        assert [t["title"] for t in data["tasks"]] == ["Open store"]
        assert data["stats"]["unresolved"] == 1

    def test_complete(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        task = make_task(person, criticality="high", task_date=real_today)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                          json={"completions": [{"task_id": task.id, "status": "completed"}]})

        assert res.status_code == 200
        assert res.get_json()["points_delta"] == 20
        assert PointsLedger.query.filter_by(person_id=person.id).one().total_points == 20

    def test_complete_requires_list(self, client, make_person, auth_headers):
        person = make_person()
        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id), json={})
        assert res.status_code == 400

    def test_invalid_status_is_422(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        task = make_task(person, task_date=real_today)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                          json={"completions": [{"task_id": task.id, "status": "maybe"}]})

        assert res.status_code == 422
        assert str(task.id) in res.get_json()["details"]

    def test_foreign_task_is_422(self, client, make_person, make_task, auth_headers, real_today):
        owner = make_person("Owner")
        other = make_person("Other")
        task = make_task(owner, task_date=real_today)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(other.id),
                          json={"completions": [{"task_id": task.id, "status": "completed"}]})

        assert res.status_code == 422

    def test_pending_person_gets_409(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        yesterday = real_today - timedelta(days=1)
        make_task(person, title="Old", task_date=yesterday)
        task = make_task(person, title="New", task_date=real_today)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                          json={"completions": [{"task_id": task.id, "status": "completed"}]})

        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_PENDING_DAYS"
        assert body["details"]["pending_dates"] == [yesterday.isoformat()]

    def test_future_date_is_422(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        tomorrow = real_today + timedelta(days=1)
        task = make_task(person, task_date=tomorrow)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                          json={"date": tomorrow.isoformat(),
                                "completions": [{"task_id": task.id, "status": "completed"}]})

        assert res.status_code == 422

    def test_bad_date_is_400(self, client, make_person, auth_headers):
        person = make_person()
        res = client.get("/api/v1/daily-tasks/completions?date=31-31-2024", headers=auth_headers(person.id))
        assert res.status_code == 400

    def test_past_date_cannot_rewrite_a_resolved_day(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        yesterday = real_today - timedelta(days=1)
        old = make_task(person, criticality="high", task_date=yesterday)
        headers = auth_headers(person.id)
        client.post("/api/v1/daily-tasks/regularize", headers=headers,
                    json={"completions": [{"task_id": old.id, "status": "completed"}]})

        res = client.post("/api/v1/daily-tasks/complete", headers=headers,
                          json={"date": yesterday.isoformat(),
                                "completions": [{"task_id": old.id, "status": "not_completed"}]})

        assert res.status_code == 422
        assert PointsLedger.query.filter_by(person_id=person.id).one().total_points == 20

    def test_past_date_cannot_score_undated_task(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        undated = make_task(person, task_date=None)

        res = client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                          json={"date": (real_today - timedelta(days=3)).isoformat(),
                                "completions": [{"task_id": undated.id, "status": "completed"}]})

        assert res.status_code == 422
        assert PointsLedger.query.filter_by(person_id=person.id).first() is None

    def test_pending_then_regularize(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person()
        yesterday = real_today - timedelta(days=1)
        old = [make_task(person, title=f"Old {i}", task_date=yesterday) for i in range(2)]
        headers = auth_headers(person.id)

        pending = client.get("/api/v1/daily-tasks/pending", headers=headers).get_json()
        assert pending["is_pending"] is True
        assert len(pending["pending_days"][0]["tasks"]) == 2

        incomplete = client.post("/api/v1/daily-tasks/regularize", headers=headers,
                                 json={"completions": [{"task_id": old[0].id, "status": "completed"}]})
        assert incomplete.status_code == 422
        assert incomplete.get_json()["details"]["missing"] == [old[1].id]

        res = client.post("/api/v1/daily-tasks/regularize", headers=headers, json={"completions": [
            {"task_id": old[0].id, "status": "completed"},
            {"task_id": old[1].id, "status": "no_demand"},
        ]})
        assert res.status_code == 200
        assert res.get_json()["still_pending"] is False

        completions = client.get(f"/api/v1/daily-tasks/completions?date={yesterday.isoformat()}",
                                 headers=headers).get_json()
        assert completions["total"] == 2


# ═════════════════════════════════════════════════════════════════════════════
# Leaderboard
# ═════════════════════════════════════════════════════════════════════════════


class TestLeaderboard:
    def test_requires_identity(self, client):
        res = client.get("/api/v1/leaderboard")
        assert res.status_code == 401

    def test_leaderboard_with_current_entry(self, client, make_person, make_task, auth_headers, real_today):
        person = make_person("Ana")
        task = make_task(person, criticality="low", task_date=real_today)
        client.post("/api/v1/daily-tasks/complete", headers=auth_headers(person.id),
                    json={"completions": [{"task_id": task.id, "status": "completed"}]})

        data = client.get("/api/v1/leaderboard", headers=auth_headers(person.id)).get_json()

        assert data["active_count"] == 1
        assert data["current"]["rank"] == 1
        assert data["current"]["medal"] == "gold"
        assert data["entries"][0]["total_points"] == 5
        assert data["entries"][0]["completion_rate"] == 100


# ═════════════════════════════════════════════════════════════════════════════
# Admin alerts
# ═════════════════════════════════════════════════════════════════════════════


class TestAlertsApi:
    @pytest.fixture()
    def alert_id(self, make_person, make_task, real_today):
        from dailyscore.services.alerts import AlertService

        make_task(make_person("Worker"), task_date=real_today - timedelta(days=1), is_mandatory=True)
        AlertService.generate_missed_mandatory_alerts(as_of=real_today)
        return AlertService.list_alerts()[0].id

    def test_list_and_count(self, client, admin, auth_headers, alert_id):
        headers = auth_headers(admin.id, admin=True)

        data = client.get("/api/v1/admin/alerts", headers=headers).get_json()

        assert data["total"] == 1
        assert data["unread_count"] == 1
        assert data["items"][0]["person"]["name"] == "Worker"
        count = client.get("/api/v1/admin/alerts/unread-count", headers=headers).get_json()
        assert count == {"unread_count": 1}

    def test_read_unread_idempotent(self, client, admin, auth_headers, alert_id):
        headers = auth_headers(admin.id, admin=True)

        for _ in range(2):
            res = client.post(f"/api/v1/admin/alerts/{alert_id}/read", headers=headers)
            assert res.status_code == 200
        assert client.get("/api/v1/admin/alerts/unread-count", headers=headers).get_json()["unread_count"] == 0

        res = client.post(f"/api/v1/admin/alerts/{alert_id}/unread", headers=headers)
        assert res.get_json()["is_read"] is False

        res = client.post("/api/v1/admin/alerts/read-all", headers=headers)
        assert res.get_json() == {"marked_read": 1}

    def test_delete_idempotent(self, client, admin, auth_headers, alert_id):
        headers = auth_headers(admin.id, admin=True)

        first = client.delete(f"/api/v1/admin/alerts/{alert_id}", headers=headers)
        second = client.delete(f"/api/v1/admin/alerts/{alert_id}", headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.get_json()["deleted"] is True
        assert second.get_json()["deleted"] is False

    def test_unknown_alert_is_a_no_op(self, client, admin, auth_headers):
        res = client.post("/api/v1/admin/alerts/999/read", headers=auth_headers(admin.id, admin=True))
        assert res.status_code == 200
        assert res.get_json()["found"] is False


# ═════════════════════════════════════════════════════════════════════════════
# Catalog & admin operations
# ═════════════════════════════════════════════════════════════════════════════


class TestCatalogApi:
    def test_criticality_points(self, client, admin, make_person, auth_headers):
        person = make_person()
        res = client.get("/api/v1/criticality-points", headers=auth_headers(person.id))
        assert {i["criticality"]: i["default_points"] for i in res.get_json()["items"]}["high"] == 20

        denied = client.put("/api/v1/criticality-points", headers=auth_headers(person.id), json={"high": 30})
        assert denied.status_code == 403

        res = client.put("/api/v1/criticality-points", headers=auth_headers(admin.id, admin=True),
                         json={"high": 30})
        assert res.status_code == 200
        assert {i["criticality"]: i["default_points"] for i in res.get_json()["items"]}["high"] == 30

        bad = client.put("/api/v1/criticality-points", headers=auth_headers(admin.id, admin=True),
                         json={"high": -3})
        assert bad.status_code == 422

    def test_create_task(self, client, admin, make_person, auth_headers, real_today):
        person = make_person()
        res = client.post("/api/v1/tasks", headers=auth_headers(admin.id, admin=True), json={
            "title": "Inventory", "assigned_to": person.id, "criticality": "critical",
            "is_mandatory": True, "task_date": real_today.isoformat(),
        })
        assert res.status_code == 201
        assert res.get_json()["points"] == 40

    def test_create_task_unknown_person_is_404(self, client, admin, auth_headers):
        res = client.post("/api/v1/tasks", headers=auth_headers(admin.id, admin=True),
                          json={"title": "X", "assigned_to": 4040})
        assert res.status_code == 404

    def test_clone(self, client, admin, make_sector, make_person, make_template, auth_headers):
        sector = make_sector()
        person = make_person(sector=sector)
        make_template(sector)

        res = client.post("/api/v1/tasks/clone", headers=auth_headers(admin.id, admin=True),
                          json={"person_id": person.id, "date": "2024-03-15"})

        assert res.status_code == 200
        assert res.get_json()["date"] == "2024-03-15"
        assert len(res.get_json()["task_ids"]) == 1

    def test_reconcile(self, client, admin, auth_headers):
        res = client.post("/api/v1/admin/ledgers/reconcile", headers=auth_headers(admin.id, admin=True))
        assert res.status_code == 200
        assert res.get_json() == {"checked": 0, "repaired": []}


class TestSchedulerAndHealth:
    def test_jobs(self, client, admin, auth_headers):
        headers = auth_headers(admin.id, admin=True)
        data = client.get("/api/v1/scheduler/jobs", headers=headers).get_json()
        assert {j["job_name"] for j in data["jobs"]} >= {"missed_mandatory_alerts", "ledger_reconciliation"}

        res = client.post("/api/v1/scheduler/jobs/unknown/trigger", headers=headers)
        assert res.status_code == 404

    def test_health(self, client):
        assert client.get("/api/v1/health/live").status_code == 200
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["jobs"] == {"status": "ok", "failing": []}
        assert "X-Request-ID" in res.headers
