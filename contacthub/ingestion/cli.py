"""
``flask contacts`` command group.

Ingestion and clean-and-merge are queued on the Celery worker by default;
``--inline`` runs them in the CLI process instead. Read-only commands inspect
import runs, the staging table and the merge history ledger.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from contacthub.ingestion.adapters.csv_contacts import CSVAdapterError, CSVContactAdapter
from contacthub.ingestion.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from contacthub.ingestion.errors import AdapterNotRegistered
from contacthub.ingestion.factory import build_orchestrator, get_registry
from contacthub.ingestion.pipeline.merge_history import MergeHistoryFilters, MergeHistoryLedger
from contacthub.ingestion.pipeline.orchestrator import PipelineResult
from contacthub.ingestion.pipeline.run_service import ImportRunTracker, RunFilters
from contacthub.ingestion.pipeline.staging import StagingStore
from contacthub.ingestion.registry import describe
from contacthub.models.base import db
from contacthub.models.enums import MergeType, SourceSystem, UnknownSourceSystem

contacts_cli = AppGroup("contacts", help="Contact ingestion and reconciliation commands.")

_SOURCE_CHOICES = [member.value for member in SourceSystem]


def _coerce_source(value: Optional[str]) -> Optional[SourceSystem]:
    if value is None:
        return None
    try:
        return SourceSystem.coerce(value)
    except UnknownSourceSystem as exc:
        raise click.BadParameter(str(exc), param_hint="--source") from exc


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Ingestion Celery app is unavailable. Ensure the ingestion package is initialised "
            "before running worker commands."
        )
    return celery_app


def _echo_result(result: PipelineResult, *, show_report: bool = True) -> None:
    payload = result.as_dict()
    if not show_report:
        payload.pop("report", None)
    click.echo(json.dumps(payload, indent=2, default=str))
    if not result.success:
        raise click.ClickException(result.message + (f": {result.error}" if result.error else ""))


def _enqueue(task_name: str, kwargs: dict[str, object]) -> dict[str, object]:
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    celery_app = _resolve_celery(app)
    try:
        async_result = celery_app.send_task(task_name, kwargs=kwargs)
    except Exception as exc:
        raise click.ClickException(f"Failed to enqueue {task_name}: {exc}") from exc
    app.logger.info(
        "Ingestion task queued via CLI",
        extra={"task_name": task_name, "task_id": async_result.id, "task_kwargs": kwargs},
    )
    return {"task_id": async_result.id, "task": task_name, "status": "queued", **kwargs}


# ----------------------------------------------------------------------
# Pipeline entry points
# ----------------------------------------------------------------------


@contacts_cli.command("ingest")
@click.option("--source", required=True, help=f"Source system ({', '.join(_SOURCE_CHOICES)}).")
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="CSV export to stage instead of the registered adapter.",
)
@click.option("--owner", "owner_name", help="Data owner recorded for rows without an owner column.")
@click.option(
    "--inline/--no-inline",
    default=False,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
def ingest_command(source: str, file_path: Optional[Path], owner_name: Optional[str], inline: bool):
    """Stage contacts from one source system."""
    source_system = _coerce_source(source)

    if not inline:
        kwargs: dict[str, object] = {"source_system": source_system.value}
        if file_path is not None:
            kwargs["file_path"] = str(file_path.resolve())
        if owner_name:
            kwargs["owner_name"] = owner_name
        click.echo(json.dumps(_enqueue("ingestion.run_source", kwargs)))
        return

    orchestrator = build_orchestrator()
    try:
        if file_path is None:
            result = orchestrator.run_ingestion(source_system)
        else:
            with file_path.open("r", encoding="utf-8", newline="") as handle:
                adapter = CSVContactAdapter(handle, source_system=source_system, owner_name=owner_name)
                result = orchestrator.run_ingestion(source_system, adapter)
    except AdapterNotRegistered as exc:
        raise click.ClickException(str(exc)) from exc
    except CSVAdapterError as exc:
        raise click.ClickException(f"Could not read {file_path}: {exc}") from exc
    _echo_result(result)


@contacts_cli.command("clean-merge")
@click.option("--source", help="Only process staged rows from this source system.")
@click.option(
    "--inline/--no-inline",
    default=False,
    help="Run inline within the CLI process instead of queueing via Celery.",
)
@click.option("--show-report", is_flag=True, help="Include the full dedup report in the output.")
def clean_merge_command(source: Optional[str], inline: bool, show_report: bool):
    """Clean, deduplicate and write staged contacts to the directory."""
    source_system = _coerce_source(source)

    if not inline:
        kwargs = {"source_system": source_system.value} if source_system else {}
        click.echo(json.dumps(_enqueue("ingestion.clean_and_merge", kwargs)))
        return

    result = build_orchestrator().clean_and_merge_all(source_system)
    _echo_result(result, show_report=show_report)


@contacts_cli.command("adapters")
def adapters_command():
    """List registered source adapters."""
    registry = get_registry(current_app._get_current_object())  # type: ignore[attr-defined]
    if not len(registry):
        click.echo("No adapters registered; use --file to ingest a CSV export.")
        return
    click.echo(json.dumps(describe(registry.descriptors()), indent=2))


# ----------------------------------------------------------------------
# Import runs
# ----------------------------------------------------------------------


@contacts_cli.group("runs")
def runs_group():
    """Inspect import runs."""


@runs_group.command("latest")
@click.option("--source", help="Restrict to one source system.")
def runs_latest(source: Optional[str]):
    tracker = ImportRunTracker(db.session)
    run = tracker.latest(_coerce_source(source))
    if run is None:
        click.echo("No import runs recorded.")
        return
    click.echo(json.dumps(tracker.summarize(run).as_dict(), indent=2))


@runs_group.command("list")
@click.option("--source", "sources", multiple=True, help="Filter by source system (repeatable).")
@click.option("--status", "statuses", multiple=True, help="Filter by run status (repeatable).")
@click.option("--kind", type=click.Choice(["INGESTION", "CLEAN_MERGE"], case_sensitive=False))
@click.option("--page", default=1, show_default=True, type=int)
@click.option("--page-size", default=25, show_default=True, type=int)
def runs_list(sources, statuses, kind: Optional[str], page: int, page_size: int):
    """List import runs, newest first."""
    try:
        filters = RunFilters.coerce(page=page, page_size=page_size, statuses=statuses, sources=sources, kind=kind)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    result = ImportRunTracker(db.session).list_runs(filters)
    if not result.items:
        click.echo("No import runs match the given filters.")
        return
    for summary in result.items:
        click.echo(
            f"#{summary.id:<5} {summary.kind:<12} {summary.source_system or '-':<8} {summary.status:<10} "
            f"total={summary.total if summary.total is not None else '-'} "
            f"started={summary.started_at.isoformat() if summary.started_at else '-'}"
        )
    click.echo(f"Page {result.page} of {result.total_pages} ({result.total} runs)")


# ----------------------------------------------------------------------
# Staging
# ----------------------------------------------------------------------


@contacts_cli.group("staging")
def staging_group():
    """Inspect or reset staged contacts."""


@staging_group.command("list")
@click.option("--source", required=True, help="Source system to list.")
@click.option("--limit", default=50, show_default=True, type=int)
def staging_list(source: str, limit: int):
    source_system = _coerce_source(source)
    store = StagingStore(db.session)
    rows = store.list_contacts(source_system)
    for row in rows[: max(limit, 0)]:
        click.echo(
            f"{row.id:<6} {row.source_record_id:<24} {row.norm_name or row.raw_name or '-':<30} "
            f"{row.norm_phone_e164 or row.raw_phone or '-':<16} score={row.quality_score if row.quality_score is not None else '-'}"
            + (f"  [{row.duplicate_hint}]" if row.duplicate_hint else "")
        )
    click.echo(f"{len(rows)} staged contact(s) for {source_system.value}.")


@staging_group.command("clear")
@click.option("--source", required=True, help="Source system to clear.")
@click.option("--yes", is_flag=True, help="Confirm deletion without prompting.")
def staging_clear(source: str, yes: bool):
    """Delete every staged row for one source."""
    source_system = _coerce_source(source)
    if not yes:
        raise click.ClickException("Refusing to clear staging without --yes.")
    removed = StagingStore(db.session).clear(source_system)
    click.echo(f"Removed {removed} staged contact(s) for {source_system.value}.")


# ----------------------------------------------------------------------
# Merge history
# ----------------------------------------------------------------------


@contacts_cli.group("merge-history")
def merge_history_group():
    """Query the merge history ledger."""


@merge_history_group.command("list")
@click.option("--contact-id", type=int, help="Entries where the contact is primary or merged.")
@click.option("--type", "merge_type", type=click.Choice([member.value for member in MergeType], case_sensitive=False))
@click.option("--source", "sources", multiple=True, help="Filter by source system (repeatable).")
@click.option("--email-only", is_flag=True, help="Only mailbox sources (Gmail, Outlook, Yahoo).")
@click.option("--since", type=click.DateTime(), help="Earliest creation time.")
@click.option("--until", type=click.DateTime(), help="Latest creation time.")
@click.option("--page", default=1, show_default=True, type=int)
@click.option("--limit", default=20, show_default=True, type=int)
def merge_history_list(
    contact_id: Optional[int],
    merge_type: Optional[str],
    sources,
    email_only: bool,
    since: Optional[datetime],
    until: Optional[datetime],
    page: int,
    limit: int,
):
    try:
        filters = MergeHistoryFilters.coerce(
            contact_id=contact_id,
            merge_type=merge_type,
            sources=sources,
            start=since,
            end=until,
            email_only=email_only,
            page=page,
            limit=limit,
        )
    except (ValueError, UnknownSourceSystem) as exc:
        raise click.BadParameter(str(exc)) from exc
    result = MergeHistoryLedger(db.session).list_entries(filters)
    click.echo(
        json.dumps(
            {
                "items": [entry.to_dict() for entry in result.items],
                "total": result.total,
                "page": result.page,
                "limit": result.limit,
            },
            indent=2,
            default=str,
        )
    )


@merge_history_group.command("stats")
def merge_history_stats():
    click.echo(json.dumps(MergeHistoryLedger(db.session).statistics().as_dict(), indent=2))


@merge_history_group.command("contact")
@click.option("--id", "contact_id", required=True, type=int)
def merge_history_contact(contact_id: int):
    entries = MergeHistoryLedger(db.session).for_contact(contact_id)
    click.echo(json.dumps([entry.to_dict() for entry in entries], indent=2, default=str))


# ----------------------------------------------------------------------
# Worker
# ----------------------------------------------------------------------


@contacts_cli.group("worker")
@with_appcontext
def worker_group():
    """Manage the ingestion background worker."""
    if not current_app.config.get("INGEST_WORKER_ENABLED"):
        click.echo(
            "Warning: INGEST_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list to consume.")
def worker_run(loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """Start the Celery worker in the current process."""
    celery_app = _resolve_celery(current_app._get_current_object())  # type: ignore[attr-defined]
    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])
    click.echo(f"Starting ingestion worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
def worker_ping(timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    celery_app = _resolve_celery(current_app._get_current_object())  # type: ignore[attr-defined]
    task = celery_app.tasks.get("ingestion.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'ingestion.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:
        raise click.ClickException(f"Worker ping failed: {exc}") from exc
    click.echo(json.dumps(payload, indent=2))
