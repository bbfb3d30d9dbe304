"""Prometheus metrics helpers for the ingestion pipeline."""

from __future__ import annotations

from typing import Literal

from flask import current_app, has_app_context
from prometheus_client import Counter, Histogram

_runs_counter = Counter(
    "contacthub_ingestion_runs_total",
    "Pipeline runs by kind and outcome.",
    ["kind", "outcome"],
)
_run_duration = Histogram(
    "contacthub_ingestion_run_duration_seconds",
    "Duration of pipeline runs in seconds.",
    ["kind"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
_staged_counter = Counter(
    "contacthub_ingestion_staged_records_total",
    "Records written to the staging table by source system.",
    ["source_system"],
)
_dedupe_counter = Counter(
    "contacthub_ingestion_dedupe_outcomes_total",
    "Deduplication outcomes (duplicate or conflict).",
    ["outcome"],
)
_writer_counter = Counter(
    "contacthub_ingestion_writer_outcomes_total",
    "Canonical contact writes by outcome.",
    ["outcome"],
)


def _enabled() -> bool:
    if not has_app_context():
        return True
    return bool(current_app.config.get("INGEST_METRICS_ENABLED", True))


def record_run(
    *,
    kind: Literal["INGESTION", "CLEAN_MERGE"],
    outcome: Literal["success", "failure", "empty"],
    duration_seconds: float | None = None,
) -> None:
    """Count a finished run and observe its duration."""

    if not _enabled():
        return
    _runs_counter.labels(kind=kind, outcome=outcome).inc()
    if duration_seconds is not None:
        _run_duration.labels(kind=kind).observe(duration_seconds)


def record_staged(source_system: str, count: int) -> None:
    if not _enabled() or count <= 0:
        return
    _staged_counter.labels(source_system=source_system).inc(count)


def record_dedupe(*, duplicates: int, conflicts: int) -> None:
    if not _enabled():
        return
    if duplicates:
        _dedupe_counter.labels(outcome="duplicate").inc(duplicates)
    if conflicts:
        _dedupe_counter.labels(outcome="conflict").inc(conflicts)


def record_writes(*, inserted: int, updated: int, failed: int) -> None:
    if not _enabled():
        return
    for outcome, count in (("inserted", inserted), ("updated", updated), ("failed", failed)):
        if count:
            _writer_counter.labels(outcome=outcome).inc(count)
