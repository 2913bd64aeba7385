"""
Shared pytest fixtures for the Procurement Desk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / dept / other_dept: Pre-created directory units
    - requester / approver / admin / super_admin: Pre-created users
    - auth_headers: build X-User-Id headers for a user
"""

import pytest

from procurement_desk import create_app
from procurement_desk.integrations.ticket_gateway import ticket_gateway
from procurement_desk.models import db as _db
from procurement_desk.models.directory import Department, Organization, User
from procurement_desk.services.notification_push import reset_hub_for_tests


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
        # In-process singletons outlive a test; start every test clean.
        reset_hub_for_tests()
        ticket_gateway.reset_circuit()
        yield
        reset_hub_for_tests()
        ticket_gateway.reset_circuit()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory fixtures ───────────────────────────────────────────────────


def _make_user(email, role, org=None, dept=None, display_name=None):
    user = User(
        email=email,
        display_name=display_name or email.split("@")[0].title(),
        role=role,
        organization_id=org.id if org else None,
        department_id=dept.id if dept else None,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def org():
    o = Organization(name="Acme Corp")
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def dept(org):
    d = Department(organization_id=org.id, name="IT")
    _db.session.add(d)
    _db.session.commit()
    return d


@pytest.fixture()
def other_dept(org):
    d = Department(organization_id=org.id, name="Finance")
    _db.session.add(d)
    _db.session.commit()
    return d


@pytest.fixture()
def requester(org, dept):
    return _make_user("rita@acme.test", "REQUESTER", org, dept, "Rita Requester")


@pytest.fixture()
def approver(org, dept):
    return _make_user("alan@acme.test", "APPROVER", org, dept, "Alan Approver")


@pytest.fixture()
def admin(org, dept):
    return _make_user("ada@acme.test", "ADMIN", org, dept, "Ada Admin")


@pytest.fixture()
def super_admin():
    return _make_user("root@acme.test", "SUPER_ADMIN", display_name="Sam Super")


@pytest.fixture()
def auth_headers():
    """Return a builder: auth_headers(user) → {"X-User-Id": "<id>"}."""
    def _build(user):
        return {"X-User-Id": str(user.id)}
    return _build
