"""
Shared pytest fixtures for the request approval test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for persisted users
    - auth_headers: Bearer header for a user
    - file_db_app: app bound to a file-backed SQLite database
"""

import os

# Keep bcrypt cheap for fixtures; must be set before any hashing happens
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from approvals import create_app
from approvals.models import db as _db
from approvals.models.user import User
from approvals.services import history
from approvals.services.jwt_service import generate_access_token
from approvals.utils.crypto import hash_password

DEFAULT_PASSWORD = "secret123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("uploads"))
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
        # Ids are reused across tests; a stale cached comment would leak
        history.invalidate_all_cache()
        yield
        history.invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: ``make_user("finance")`` → persisted, confirmed User."""
    counter = {"n": 0}

    def _make(role="employee", name=None, email=None, confirmed=True):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=email or f"{role}{n}@example.org",
            name=name or f"{role.title()} User {n}",
            role=role,
            password_hash=hash_password(DEFAULT_PASSWORD),
            is_confirmed=confirmed,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers(app):
    """``auth_headers(user)`` → Authorization header dict."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user)}"}
    return _headers


@pytest.fixture()
def sent_notifications():
    """Recording notifier for RequestLifecycle(notifier=...)."""
    calls = []

    def _notifier(target_user, payload):
        calls.append((target_user, payload))
        return True

    _notifier.calls = calls
    return _notifier


@pytest.fixture()
def file_db_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database, for tests that need two real
    connections. Pushes its own app context over the in-memory one."""
    from approvals.config import TestingConfig

    monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI",
                        f"sqlite:///{tmp_path / 'approvals.db'}")
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    with application.app_context():
        history.invalidate_all_cache()
        yield application
        history.invalidate_all_cache()
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()
