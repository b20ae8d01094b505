"""
Shared pytest fixtures for the PM Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project
    - people: Three active people (requester, approver, reviewer)
    - change / risk factories
"""

import pytest

from pmtracker import create_app
from pmtracker.models import db as _db


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(client):
    """Create and return a test Project via the API."""
    res = client.post("/api/v1/projects", json={
        "project_code": "PRJ-1",
        "project_name": "ERP Rollout",
        "status": "Active",
        "project_manager": "Dana Reyes",
    })
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def people(client):
    """Three active people keyed by role in the approval flow."""
    created = {}
    for key, full_name in (
        ("requester", "Ana Requester"),
        ("approver", "Omar Approver"),
        ("reviewer", "Kim Reviewer"),
    ):
        res = client.post("/api/v1/people", json={
            "username": key,
            "full_name": full_name,
            "email": f"{key}@example.com",
            "role": key.capitalize(),
        })
        assert res.status_code == 201
        created[key] = res.get_json()
    return created


@pytest.fixture()
def make_change(client, project, people):
    """Factory: create a change in status Requested."""
    def _make(**kw):
        payload = {
            "project_id": project["id"],
            "title": "Extend reporting scope",
            "change_type": "Scope",
            "priority": "High",
            "requested_by": people["requester"]["id"],
            "cost_impact": 12000,
            "schedule_impact_days": 10,
        }
        payload.update(kw)
        res = client.post("/api/v1/changes", json=payload)
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _make


@pytest.fixture()
def make_risk(client, project, people):
    """Factory: create a risk (default status Identified)."""
    def _make(**kw):
        payload = {
            "project_id": project["id"],
            "title": "Key consultant may leave",
            "probability": "High",
            "impact": "Very High",
            "identified_by": people["requester"]["id"],
            "owner": people["reviewer"]["id"],
        }
        payload.update(kw)
        res = client.post("/api/v1/risks", json=payload)
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _make
