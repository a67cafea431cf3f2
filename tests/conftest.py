"""
Shared pytest fixtures for the licensing workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - auth_headers: factory for Bearer headers for a given role
    - make_application: factory inserting an application at a given phase
"""

import pytest

from licensing import create_app
from licensing.core.phases import PHASES
from licensing.models import db as _db
from licensing.models.application import Application
from licensing.services.jwt_service import generate_access_token


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
def auth_headers():
    """Return a function building Authorization headers for a role."""
    def _make(role, actor_id="officer-1", name=None):
        token = generate_access_token(actor_id, role, name=name)
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture()
def make_application():
    """Insert and commit an application directly, bypassing intake rules."""
    def _make(status=PHASES[0], title="Dealer licence - Test Arms Ltd", **fields):
        row = Application(
            title=title,
            status=status,
            data=fields.pop("data", {}),
            sections=fields.pop("sections", {}),
            documents=fields.pop("documents", []),
            version=fields.pop("version", 0),
            **fields,
        )
        _db.session.add(row)
        _db.session.commit()
        return row.id
    return _make
