# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask
from sqlalchemy import event

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit  # noqa: E402
from contacthub.ingestion import init_ingestion  # noqa: E402
from contacthub.models import db  # noqa: E402
from contacthub.utils.logging_config import setup_logging  # noqa: E402

logger = logging.getLogger(__name__)

_CONFIGS = {
    "production": (ProductionConfig, ProductionMonitoringConfig),
    "testing": (TestingConfig, TestingMonitoringConfig),
    "development": (DevelopmentConfig, DevelopmentMonitoringConfig),
}


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)
        finally:
            cursor.close()

    return _configure_sqlite_connection


def create_app(flask_env=None, overrides=None):
    """
    Build the ContactHub application.

    ``flask_env`` defaults to ``FLASK_ENV`` (development when unset);
    ``overrides`` is applied on top of the selected config classes.
    """
    flask_env = flask_env or os.environ.get("FLASK_ENV", "development")

    # Validate environment variables (only in production)
    if flask_env == "production":
        validate_and_exit(flask_env)

    app = Flask(__name__)
    base_config, monitoring_config = _CONFIGS.get(flask_env, _CONFIGS["development"])
    app.config.from_object(base_config)
    app.config.from_object(monitoring_config)
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    setup_logging(app)

    with app.app_context():
        engine = db.engine
        if engine.url.drivername.startswith("sqlite") and not getattr(engine, "_sqlite_pragmas_configured", False):
            pragma_hook = _configure_sqlite_connection_factory(enable_foreign_keys=True)
            event.listen(engine, "connect", pragma_hook)
            engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
        # Create the database tables only if not in testing mode
        if not app.config.get("TESTING", False):
            db.create_all()

    init_ingestion(app)
    return app
