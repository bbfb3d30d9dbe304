# config/validation.py

"""
Environment variable validation for ContactHub.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in {"your-secret-key", "your_secret_key"}:
        errors.append("SECRET_KEY is required in production and must not be the default value.")

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your PostgreSQL connection string.")

    if os.environ.get("INGEST_WORKER_ENABLED", "false").lower() == "true":
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required when INGEST_WORKER_ENABLED=true")

    profile_path = os.environ.get("INGEST_SCORING_PROFILE_PATH")
    if profile_path and not os.path.exists(profile_path):
        errors.append(f"INGEST_SCORING_PROFILE_PATH points to a missing file: {profile_path}")

    return len(errors) == 0, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        sys.exit(1)
