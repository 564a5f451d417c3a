"""
Shared pytest fixtures for the DACUM platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + fresh service container (autouse)
    - client: Flask test client (function-scoped)
    - services: the app's service container for the current test
    - memory_stores / cp_service: in-process stores and a CPService over them
    - three_wa_cu: a CU payload with enough work activities to lock
"""

import pytest

from dacum import create_app
from dacum.models import db as _db
from dacum.services import get_services, init_services
from dacum.services.cp_service import CPService
from dacum.stores import build_stores


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
    """Per-test: open app context, rebuild services, recreate tables afterwards."""
    with app.app_context():
        # matching cache and key locks live on the container
        init_services(app)
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def services():
    return get_services()


# ── Engine fixtures (no HTTP) ────────────────────────────────────────────


@pytest.fixture()
def memory_stores():
    """(session_store, version_store, catalog_store) kept in process memory."""
    return build_stores("memory")


@pytest.fixture()
def cp_service(memory_stores):
    session_store, version_store, _ = memory_stores
    return CPService(version_store, session_store)


@pytest.fixture()
def three_wa_cu():
    return {
        "cu_code": "CU-01",
        "cu_title": "Attendance Management",
        "language": "EN",
        "work_activities": [
            {"wa_title": "Plan attendance schedule"},
            {"wa_title": "Perform attendance recording"},
            {"wa_title": "Prepare attendance report"},
        ],
    }
