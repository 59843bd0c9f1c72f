"""
Shared pytest fixtures for the Power Platform assessment test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - clock: Deterministic, manually advanced clock
    - service: ProjectService over in-memory storage
    - project: Pre-created project via the service
"""

from datetime import datetime, timedelta, timezone

import pytest

from pp_assessment import create_app
from pp_assessment.models import db as _db
from pp_assessment.services.persistence import AssessmentStore, MemoryStorage
from pp_assessment.services.project_service import ProjectService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Service fixtures ─────────────────────────────────────────────────────


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def store(storage, clock):
    return AssessmentStore(storage, clock=clock)


@pytest.fixture()
def service(store, clock):
    return ProjectService(store, clock=clock, environment_id="testing")


@pytest.fixture()
def project(service):
    return service.create_project("Contoso Assessment", client_name="Contoso Ltd",
                                  assessor={"name": "Dana Reyes", "role": "Architect"})
