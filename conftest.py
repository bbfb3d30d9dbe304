# conftest.py

import os
import tempfile
import uuid

import pytest

# Set testing environment BEFORE importing app so config classes resolve for tests
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from contacthub.models import db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create a Flask application backed by an isolated temporary SQLite file."""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app = create_app(
            "testing",
            overrides={
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": False,
                "LOG_LEVEL": "DEBUG",
                "INGEST_METRICS_ENABLED": False,
                "INGEST_WORKER_ENABLED": False,
            },
        )

        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.drop_all()
    finally:
        # Always close and remove the temporary database file, even on error
        try:
            os.close(db_fd)
        except OSError:
            pass
        for suffix in ("", "-wal", "-shm"):
            try:
                if os.path.exists(temp_db + suffix):
                    os.unlink(temp_db + suffix)
            except OSError:
                pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


# Pytest configuration
def pytest_configure(config):
    """Register markers and make sure the testing environment is active"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
