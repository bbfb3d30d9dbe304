"""
Celery configuration for the ingestion worker.

The broker and result backend default to a SQLite file in the Flask instance
folder, so a local worker runs without Redis. Set ``CELERY_BROKER_URL`` and
``CELERY_RESULT_BACKEND`` to point at real infrastructure.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from celery import Celery
from flask import Flask
from kombu import Queue

DEFAULT_QUEUE_NAME = "ingestion"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"


def _configure_quiet_loggers(app: Flask) -> None:
    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def _sqlite_path(app: Flask) -> Path:
    configured = app.config.get("CELERY_SQLITE_PATH")
    if configured:
        sqlite_path = Path(configured)
        if not sqlite_path.is_absolute():
            sqlite_path = Path(app.instance_path) / sqlite_path
    else:
        sqlite_path = Path(app.instance_path) / DEFAULT_SQLITE_FILENAME

    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_path


def _connection_urls(app: Flask) -> tuple[str, str]:
    """Return ``(broker_url, result_backend)``, filling gaps with the SQLite transport."""
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")
    if broker_url and result_backend:
        return broker_url, result_backend

    # Celery expects forward slashes even on Windows.
    normalized = _sqlite_path(app).as_posix()
    return broker_url or f"sqla+sqlite:///{normalized}", result_backend or f"db+sqlite:///{normalized}"


def _extra_conf(app: Flask) -> Mapping[str, Any] | None:
    extra_conf: Mapping[str, Any] | str | None = app.config.get("CELERY_CONFIG")
    if isinstance(extra_conf, str):
        try:
            extra_conf = json.loads(extra_conf)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            return None
    return extra_conf or None


def create_celery_app(app: Flask) -> Celery:
    """Create a Celery instance whose tasks run inside ``app``'s context."""
    broker_url, result_backend = _connection_urls(app)
    celery_app = Celery(
        app.import_name,
        broker=broker_url,
        backend=result_backend,
        include=("contacthub.ingestion.tasks",),
    )
    celery_app.conf.update(
        task_default_queue=DEFAULT_QUEUE_NAME,
        task_queues=[Queue(DEFAULT_QUEUE_NAME)],
        task_default_exchange=DEFAULT_QUEUE_NAME,
        task_default_routing_key=DEFAULT_QUEUE_NAME,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        result_extended=True,
        broker_connection_retry_on_startup=True,
        task_time_limit=app.config.get("INGEST_TASK_TIME_LIMIT", 15 * 60),
        task_soft_time_limit=app.config.get("INGEST_TASK_SOFT_TIME_LIMIT", 12 * 60),
        worker_hijack_root_logger=False,
    )

    extra_conf = _extra_conf(app)
    if extra_conf:
        celery_app.conf.update(extra_conf)

    app.logger.info(
        "Ingestion Celery configuration resolved",
        extra={
            "celery_broker_url": broker_url,
            "celery_result_backend": result_backend,
            "ingest_worker_enabled": app.config.get("INGEST_WORKER_ENABLED"),
        },
    )
    _configure_quiet_loggers(app)

    class FlaskContextTask(celery_app.Task):  # type: ignore[misc]
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery_app.Task = FlaskContextTask  # type: ignore[assignment]
    celery_app.loader.import_default_modules()
    return celery_app


def ensure_celery_app(app: Flask, state: dict[str, Any]) -> Celery:
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None:
        celery_app = create_celery_app(app)
        state["celery_app"] = celery_app
    return celery_app


def get_celery_app(app: Flask) -> Celery | None:
    """Return the cached Celery app, building it on first use."""
    state: dict[str, Any] | None = app.extensions.get("ingestion")  # type: ignore[arg-type]
    if not state:
        return None
    return ensure_celery_app(app, state)
