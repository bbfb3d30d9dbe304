# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None):
    """Parse an integer setting, falling back to ``default`` on junk input."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _parse_source_list(value, default=()):
    """
    Parse a comma-separated source system list while keeping order and removing duplicates.

    Values are upper-cased to match the ``SourceSystem`` enum; membership is
    validated later by the scoring profile loader.

    Returns:
        tuple[str, ...]: Normalized source identifiers.
    """
    if value is None:
        return tuple(default)

    seen = set()
    sources = []
    for raw_item in value.split(","):
        item = raw_item.strip().upper()
        if not item or item in seen:
            continue
        seen.add(item)
        sources.append(item)
    return tuple(sources)


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")
    if not SECRET_KEY and _is_production:
        raise ValueError("SECRET_KEY environment variable is required in production.")
    if not SECRET_KEY:
        SECRET_KEY = "dev-secret-key-change-in-production"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Ingestion pipeline configuration
    INGEST_DEFAULT_PHONE_REGION = os.environ.get("INGEST_DEFAULT_PHONE_REGION", "IN").strip().upper() or "IN"
    INGEST_TRUSTED_SOURCES = _parse_source_list(os.environ.get("TRUSTED_SOURCES"), default=("ZOHO", "INVOICE"))
    INGEST_REPORT_MAX_CHARS = _coerce_int(os.environ.get("INGEST_REPORT_MAX_CHARS"), 1000, minimum=0)
    INGEST_DEFAULT_OWNER = os.environ.get("INGEST_DEFAULT_OWNER", "Unknown Owner").strip() or "Unknown Owner"
    INGEST_SCORING_PROFILE_PATH = os.environ.get("INGEST_SCORING_PROFILE_PATH")
    INGEST_STAGING_BATCH_SIZE = _coerce_int(os.environ.get("INGEST_STAGING_BATCH_SIZE"), 500, minimum=1)

    # Background worker
    INGEST_WORKER_ENABLED = _coerce_bool(os.environ.get("INGEST_WORKER_ENABLED"), default=False)
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")
    INGEST_TASK_TIME_LIMIT = _coerce_int(os.environ.get("INGEST_TASK_TIME_LIMIT"), 15 * 60, minimum=1)
    INGEST_TASK_SOFT_TIME_LIMIT = _coerce_int(os.environ.get("INGEST_TASK_SOFT_TIME_LIMIT"), 12 * 60, minimum=1)


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path = os.path.join(instance_path, "contacthub_dev.db").replace("\\", "/")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or f"sqlite:///{db_path}"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret-key-for-testing-only"
    INGEST_TRUSTED_SOURCES = ("ZOHO", "INVOICE")
    INGEST_SCORING_PROFILE_PATH = None
    INGEST_WORKER_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
