# conftest.py

import json
import os
import tempfile
import uuid

import pytest
from flask_login import FlaskLoginClient
from werkzeug.security import generate_password_hash

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from recovery_app.importer import init_recovery  # noqa: E402
from recovery_app.models import ImportSession, ImportSessionStatus, User, db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app.config.update(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SECRET_KEY": "test-secret-key-for-testing-only",
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": False,
                "RECOVERY_ENABLED": True,
                "RECOVERY_FIXTURE_FALLBACK": True,
                "RECOVERY_LOADER_TIMEOUT_SECONDS": 5.0,
                "RECOVERY_AUTOFIX_THRESHOLD": 90,
                "RECOVERY_MAX_BULK_FINDINGS": 5000,
            }
        )
        flask_app.test_client_class = FlaskLoginClient
        # Fresh recovery store per test so sessions never leak between tests
        init_recovery(flask_app)

        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.drop_all()
    finally:
        try:
            os.close(db_fd)
        except OSError:
            pass
        try:
            if os.path.exists(temp_db):
                os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Anonymous test client"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def recovery_state(app):
    return app.extensions["recovery"]


def _create_user(username):
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=generate_password_hash("testpass123"),
        first_name=username.title(),
        last_name="User",
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def test_user(app):
    """Persisted user that owns the import sessions created by ``make_import_session``"""
    return _create_user("testuser")


@pytest.fixture
def other_user(app):
    """Persisted user that owns nothing"""
    return _create_user("otheruser")


@pytest.fixture
def auth_client(app, test_user):
    """Client logged in as ``test_user``"""
    return app.test_client(user=test_user)


@pytest.fixture
def make_import_session(app, test_user):
    """Factory persisting an import session owned by ``test_user`` unless told otherwise"""

    def _make(session_id=None, *, user=None, file_path=None, file_name="products.csv", metadata=None):
        owner = user or test_user
        record = ImportSession(
            session_id=session_id or f"import_{uuid.uuid4().hex[:12]}",
            user_id=owner.id,
            file_name=file_name,
            file_path=str(file_path) if file_path is not None else None,
            status=ImportSessionStatus.PREVIEWED,
            metadata_json=metadata,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return _make


@pytest.fixture
def write_json_source(tmp_path):
    """Write a JSON list of product records to disk and return the path"""

    def _write(records, name="products.json"):
        path = tmp_path / name
        path.write_text(json.dumps(records), encoding="utf-8")
        return path

    return _write


def pytest_configure(config):
    """Ensure testing environment and register markers"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
