"""
Ingestion Celery tasks.

Each task runs one pipeline entry point inside the Flask app context supplied
by ``FlaskContextTask`` and re-raises a failed result so Celery records the
task as failed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from celery import shared_task
from flask import current_app

from contacthub.ingestion.adapters.csv_contacts import CSVContactAdapter
from contacthub.ingestion.factory import build_orchestrator


@shared_task(name="ingestion.healthcheck", bind=True)
def ingestion_healthcheck(self) -> dict[str, Any]:
    """Heartbeat used by ``flask contacts worker ping``."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="ingestion.run_source", bind=True)
def run_source(
    self,
    *,
    source_system: str,
    file_path: str | None = None,
    owner_name: str | None = None,
) -> dict[str, Any]:
    """Stage contacts for one source, from a CSV file when ``file_path`` is given."""
    orchestrator = build_orchestrator()

    if file_path is None:
        result = orchestrator.run_ingestion(source_system)
    else:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")
        with path.open("r", encoding="utf-8", newline="") as handle:
            adapter = CSVContactAdapter(handle, source_system=source_system, owner_name=owner_name)
            result = orchestrator.run_ingestion(source_system, adapter)

    current_app.logger.info(
        "Ingestion task finished",
        extra={
            "task_id": self.request.id,
            "import_run_id": result.import_run_id,
            "ingestion_success": result.success,
        },
    )
    result.raise_for_error()
    return result.as_dict()


@shared_task(name="ingestion.clean_and_merge", bind=True)
def clean_and_merge(self, *, source_system: str | None = None) -> dict[str, Any]:
    result = build_orchestrator().clean_and_merge_all(source_system)
    current_app.logger.info(
        "Clean and merge task finished",
        extra={
            "task_id": self.request.id,
            "import_run_id": result.import_run_id,
            "ingestion_success": result.success,
        },
    )
    result.raise_for_error()
    return result.as_dict()
