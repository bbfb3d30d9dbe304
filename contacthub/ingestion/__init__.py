"""
Contact ingestion package.

``init_ingestion`` wires the adapter registry, scoring profile, Celery worker
and the ``flask contacts`` CLI group onto an application.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from .celery_app import ensure_celery_app, get_celery_app
from .cli import contacts_cli
from .factory import (
    INGESTION_EXTENSION_KEY,
    build_orchestrator,
    ensure_extension_state,
    get_registry,
    get_scoring_profile,
)
from .pipeline.orchestrator import IngestionOrchestrator, PipelineResult
from .registry import AdapterFactory, AdapterRegistry

__all__ = [
    "INGESTION_EXTENSION_KEY",
    "IngestionOrchestrator",
    "PipelineResult",
    "build_orchestrator",
    "get_celery_app",
    "init_ingestion",
    "register_adapter",
]


def _set_cli(app: Flask) -> None:
    # Avoid duplicate registrations when running tests
    if contacts_cli.name in app.cli.commands:
        app.cli.commands.pop(contacts_cli.name)
    app.cli.add_command(contacts_cli)


def init_ingestion(app: Flask) -> None:
    """Record ingestion state in ``app.extensions['ingestion']`` and register the CLI."""
    state = ensure_extension_state(app)
    worker_enabled = bool(app.config.get("INGEST_WORKER_ENABLED", False))
    state["worker_enabled"] = worker_enabled
    profile = get_scoring_profile(app)

    if worker_enabled:
        ensure_celery_app(app, state)

    _set_cli(app)
    app.logger.info(
        "Ingestion initialised (worker %s, trusted sources: %s)",
        "enabled" if worker_enabled else "disabled",
        ", ".join(sorted(source.value for source in profile.trusted_sources)) or "none",
    )


def register_adapter(
    app: Flask,
    source_system: Any,
    factory: AdapterFactory,
    *,
    title: str | None = None,
    replace: bool = False,
) -> None:
    """Register a provider adapter factory for ``source_system``."""
    registry: AdapterRegistry = get_registry(app)
    registry.register(source_system, factory, title=title, replace=replace)
