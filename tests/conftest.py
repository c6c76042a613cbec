"""
Shared pytest fixtures for the code review platform test suite.

Provides:
    - app: Flask application (session-scoped, uploads under a temp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - storage: the app's LocalArtifactStorage
    - make_user: factory creating User rows directly
    - auth_headers: bearer headers for a User
"""

import shutil

import pytest

from codereview import create_app
from codereview.models import db as _db
from codereview.models.auth import User
from codereview.models.roles import GlobalRole
from codereview.services.jwt_service import issue_access_token
from codereview.services.storage import get_artifact_storage
from codereview.utils.crypto import hash_password

TEST_PASSWORD = "Secret123!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def upload_root(tmp_path_factory):
    return tmp_path_factory.mktemp("uploads")


@pytest.fixture(scope="session")
def app(upload_root):
    """Create the Flask application once per test session."""
    application = create_app("testing", overrides={
        "UPLOAD_FOLDER": str(upload_root / "submissions"),
        "UPLOAD_STAGING_FOLDER": str(upload_root / "staging"),
    })
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
def session(app, _setup_db, upload_root):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    # Artifacts from one test must not leak into the next
    for sub in ("submissions", "staging"):
        shutil.rmtree(upload_root / sub, ignore_errors=True)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def storage(app):
    return get_artifact_storage()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: create and commit a User with the shared test password."""
    counter = {"n": 0}

    def _make(email=None, role=GlobalRole.SUBMITTER, name=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@acme.io",
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
            name=name or f"User {counter['n']}",
            role=role,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers():
    """Build ``Authorization: Bearer`` headers for a User row."""

    def _headers(user):
        token = issue_access_token(user.id, user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
