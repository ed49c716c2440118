"""
Shared pytest fixtures for the Daily Score Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_sector / make_person / make_template / make_task: small factories
    - today / yesterday: fixed calendar days passed to services
    - auth_headers: trusted identity headers
"""

from datetime import date, timedelta

import pytest

from dailyscore import create_app
from dailyscore.models import db as _db
from dailyscore.services import cache_service

# Fixed "today" for service-level tests; services take it as a parameter.
TODAY = date(2024, 3, 15)
YESTERDAY = TODAY - timedelta(days=1)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.clear_all()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.clear_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_sector():
    from dailyscore.models.person import Sector

    def _make(name="Operations"):
        sector = Sector(name=name)
        _db.session.add(sector)
        _db.session.commit()
        return sector

    return _make


@pytest.fixture()
def make_person():
    from dailyscore.models.person import Person

    def _make(name="Ana", sector=None, is_active=True):
        person = Person(name=name, sector_id=sector.id if sector else None, is_active=is_active)
        _db.session.add(person)
        _db.session.commit()
        return person

    return _make


@pytest.fixture()
def make_template():
    from dailyscore.models.task import TaskTemplate

    def _make(sector, title="Check stock", criticality="medium", is_mandatory=False, is_active=True):
        template = TaskTemplate(
            title=title,
            sector_id=sector.id,
            criticality=criticality,
            is_mandatory=is_mandatory,
            is_active=is_active,
        )
        _db.session.add(template)
        _db.session.commit()
        return template

    return _make


@pytest.fixture()
def make_task():
    """Ad-hoc TaskInstance through the catalog service (points from the table)."""
    from dailyscore.services import task_catalog

    def _make(person, title="Task", criticality="medium", task_date=TODAY, is_mandatory=False):
        return task_catalog.create_task_instance(
            title=title,
            assigned_to=person.id,
            criticality=criticality,
            is_mandatory=is_mandatory,
            task_date=task_date,
        )

    return _make


# ── Clock & identity ─────────────────────────────────────────────────────


@pytest.fixture()
def today():
    return TODAY


@pytest.fixture()
def yesterday():
    return YESTERDAY


@pytest.fixture()
def auth_headers():
    """Trusted identity headers: auth_headers(person_id, admin=False)."""

    def _headers(person_id, admin=False):
        headers = {"X-Person-Id": str(person_id)}
        if admin:
            headers["X-Person-Role"] = "admin"
        return headers

    return _headers
