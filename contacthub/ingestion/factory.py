"""Build an ``IngestionOrchestrator`` from Flask configuration."""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app
from sqlalchemy.orm import Session

from config.scoring import ScoringProfile, load_scoring_profile
from contacthub.ingestion.pipeline.orchestrator import IngestionOrchestrator
from contacthub.ingestion.registry import AdapterRegistry
from contacthub.models.base import db

INGESTION_EXTENSION_KEY = "ingestion"


def ensure_extension_state(app: Flask) -> dict[str, Any]:
    return app.extensions.setdefault(
        INGESTION_EXTENSION_KEY,
        {
            "registry": AdapterRegistry(),
            "scoring_profile": None,
            "worker_enabled": False,
            "celery_app": None,
        },
    )


def get_scoring_profile(app: Flask) -> ScoringProfile:
    """Return the cached profile, loading it from config on first use."""
    state = ensure_extension_state(app)
    profile: ScoringProfile | None = state.get("scoring_profile")
    if profile is None:
        profile = load_scoring_profile(
            trusted_sources=app.config.get("INGEST_TRUSTED_SOURCES"),
            default_region=app.config.get("INGEST_DEFAULT_PHONE_REGION"),
            override_path=app.config.get("INGEST_SCORING_PROFILE_PATH"),
        )
        state["scoring_profile"] = profile
    return profile


def get_registry(app: Flask) -> AdapterRegistry:
    return ensure_extension_state(app)["registry"]


def build_orchestrator(app: Flask | None = None, session: Session | None = None) -> IngestionOrchestrator:
    app = app or current_app._get_current_object()  # type: ignore[attr-defined]
    config = app.config
    return IngestionOrchestrator(
        session or db.session,
        registry=get_registry(app),
        profile=get_scoring_profile(app),
        report_max_chars=config.get("INGEST_REPORT_MAX_CHARS", 1000),
        staging_batch_size=config.get("INGEST_STAGING_BATCH_SIZE", 500),
        default_owner_name=config.get("INGEST_DEFAULT_OWNER", "Unknown Owner"),
    )
