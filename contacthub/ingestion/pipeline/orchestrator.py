"""
Pipeline entry points.

``run_ingestion`` pulls one source into staging; ``clean_and_merge_all``
turns staged rows into canonical contacts. Both return a ``PipelineResult``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from config.scoring import DEFAULT_PROFILE, ScoringProfile
from contacthub.ingestion import metrics
from contacthub.ingestion.adapters.base import ContactAdapter, coerce_payloads
from contacthub.ingestion.errors import AdapterFailure, IngestionError, PipelineFailure
from contacthub.ingestion.pipeline.clean import clean_staging_contacts
from contacthub.ingestion.pipeline.dedupe import Deduplicator
from contacthub.ingestion.pipeline.merge_history import MergeHistoryLedger
from contacthub.ingestion.pipeline.run_service import DEFAULT_REPORT_MAX_CHARS, ImportRunTracker
from contacthub.ingestion.pipeline.staging import BATCH_SIZE, StagingStore
from contacthub.ingestion.pipeline.writer import DEFAULT_OWNER_NAME, ContactWriter
from contacthub.ingestion.registry import AdapterRegistry
from contacthub.models.enums import ImportRunKind, SourceSystem

logger = logging.getLogger(__name__)

NO_STAGING_MESSAGE = "No staging contacts to process"
CLEAN_MERGE_FAILED_MESSAGE = "Clean and merge process failed"


@dataclass
class PipelineResult:
    """Outcome of one pipeline entry point."""

    success: bool
    message: str
    source_system: SourceSystem | None = None
    total: int = 0
    inserted: int | None = None
    updated: int | None = None
    duplicates: int | None = None
    conflicts: int | None = None
    import_run_id: int | None = None
    report: list[dict[str, Any]] | None = None
    error: BaseException | None = field(default=None, repr=False)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.source_system is not None:
            payload["sourceSystem"] = self.source_system.value
        payload["total"] = self.total
        for key, value in (
            ("inserted", self.inserted),
            ("updated", self.updated),
            ("duplicates", self.duplicates),
            ("conflicts", self.conflicts),
        ):
            if value is not None:
                payload[key] = value
        payload["importRunId"] = self.import_run_id
        if self.report is not None:
            payload["report"] = self.report
        payload["message"] = self.message
        if self.error is not None:
            payload["error"] = str(self.error)
        return payload


class IngestionOrchestrator:
    """Wire the pipeline stages together over one SQLAlchemy session."""

    def __init__(
        self,
        session: Session,
        *,
        registry: AdapterRegistry | None = None,
        profile: ScoringProfile | None = None,
        report_max_chars: int = DEFAULT_REPORT_MAX_CHARS,
        staging_batch_size: int = BATCH_SIZE,
        default_owner_name: str = DEFAULT_OWNER_NAME,
    ) -> None:
        self.session = session
        self.registry = registry or AdapterRegistry()
        self.profile = profile or DEFAULT_PROFILE
        self.staging = StagingStore(session, batch_size=staging_batch_size)
        self.runs = ImportRunTracker(session, report_max_chars=report_max_chars)
        self.ledger = MergeHistoryLedger(session)
        self.deduplicator = Deduplicator(session, self.ledger)
        self.writer = ContactWriter(session, default_owner_name=default_owner_name)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def run_ingestion(
        self,
        source_system: SourceSystem | str,
        adapter: ContactAdapter | None = None,
    ) -> PipelineResult:
        """
        Fetch contacts from one source and stage them.

        ``UnknownSourceSystem`` and ``AdapterNotRegistered`` are raised before
        any run exists. Failures after the run is created mark it FAILED and
        come back as an unsuccessful result carrying the exception.
        """

        source = SourceSystem.coerce(source_system)
        if adapter is None:
            adapter = self.registry.resolve(source)

        started = time.monotonic()
        run = self.runs.create(source, kind=ImportRunKind.INGESTION)
        run_id = run.id
        logger.info("Starting ingestion for %s", source.value, extra={"import_run_id": run_id})

        try:
            self.runs.mark_fetching(run)
            try:
                raw_contacts = adapter.fetch_contacts()
                transformed = adapter.transform_to_staging(raw_contacts)
            except IngestionError:
                raise
            except Exception as exc:
                raise AdapterFailure(source.value, str(exc)) from exc
            payloads = coerce_payloads(transformed, expected_source=source)
            summary = self.staging.bulk_create(payloads, import_run=run)
            self.runs.mark_staged(run, total=summary.rows_staged)
        except Exception as exc:
            logger.exception(
                "Ingestion failed for %s",
                source.value,
                extra={"import_run_id": run_id, "source_system": source.value},
            )
            self.runs.fail(run_id, exc)
            metrics.record_run(kind="INGESTION", outcome="failure", duration_seconds=time.monotonic() - started)
            return PipelineResult(
                success=False,
                message=f"Ingestion failed for {source.value}",
                source_system=source,
                import_run_id=run_id,
                error=exc,
            )

        metrics.record_staged(source.value, summary.rows_staged)
        metrics.record_run(kind="INGESTION", outcome="success", duration_seconds=time.monotonic() - started)
        logger.info(
            "Ingestion for %s staged %s contacts",
            source.value,
            summary.rows_staged,
            extra={"import_run_id": run_id, "rows_created": summary.rows_created, "rows_refreshed": summary.rows_refreshed},
        )
        return PipelineResult(
            success=True,
            message=f"Staged {summary.rows_staged} contacts from {source.value}",
            source_system=source,
            total=summary.rows_staged,
            import_run_id=run_id,
        )

    # ------------------------------------------------------------------
    # Clean and merge
    # ------------------------------------------------------------------

    def clean_and_merge_all(self, source_system: SourceSystem | str | None = None) -> PipelineResult:
        """
        Clean, deduplicate and write every staged contact, optionally for one source.

        Never raises: any failure, including an unknown ``source_system``, comes
        back as an unsuccessful result. A run exists only once staged rows were found.
        """

        source: SourceSystem | None = None
        started = time.monotonic()
        run_id: int | None = None

        try:
            if source_system is not None:
                source = SourceSystem.coerce(source_system)
            staged = self.staging.list_contacts(source)
            if not staged:
                logger.info("No staging contacts to process")
                metrics.record_run(kind="CLEAN_MERGE", outcome="empty")
                return PipelineResult(
                    success=True,
                    message=NO_STAGING_MESSAGE,
                    source_system=source,
                    inserted=0,
                    updated=0,
                    duplicates=0,
                    conflicts=0,
                )

            run = self.runs.create(source, kind=ImportRunKind.CLEAN_MERGE)
            run_id = run.id
            logger.info("Clean and merge started for %s staged contacts", len(staged), extra={"import_run_id": run_id})

            cleaned = clean_staging_contacts(staged, store=self.staging, profile=self.profile)
            dedup = self.deduplicator.deduplicate(cleaned.candidates)
            self._persist_dedup_outcome(dedup.records)

            written = self.writer.write_contacts_to_final(dedup.records)
            self.writer.associate_with_owners(dedup.records)

            total = len(staged)
            run = self.runs.get(run_id)
            if run is None:
                raise PipelineFailure(f"Import run {run_id} disappeared during clean and merge.")
            self.runs.complete(
                run,
                total=total,
                inserted=written.inserted,
                updated=written.updated,
                duplicates=dedup.duplicates,
                conflicts=dedup.conflicts,
                report=dedup.report,
            )
        except Exception as exc:
            logger.exception("Clean and merge process failed", extra={"import_run_id": run_id})
            if run_id is not None:
                self.runs.fail(run_id, exc)
            else:
                self.session.rollback()
            metrics.record_run(kind="CLEAN_MERGE", outcome="failure", duration_seconds=time.monotonic() - started)
            return PipelineResult(
                success=False,
                message=CLEAN_MERGE_FAILED_MESSAGE,
                source_system=source,
                inserted=0,
                updated=0,
                duplicates=0,
                conflicts=0,
                import_run_id=run_id,
                error=exc,
            )

        metrics.record_dedupe(duplicates=dedup.duplicates, conflicts=dedup.conflicts)
        metrics.record_writes(inserted=written.inserted, updated=written.updated, failed=written.failed)
        metrics.record_run(kind="CLEAN_MERGE", outcome="success", duration_seconds=time.monotonic() - started)
        logger.info(
            "Clean and merge finished: %s inserted, %s updated, %s duplicates, %s conflicts",
            written.inserted,
            written.updated,
            dedup.duplicates,
            dedup.conflicts,
            extra={"import_run_id": run_id},
        )
        return PipelineResult(
            success=True,
            message=f"Successfully processed {total} contacts",
            source_system=source,
            total=total,
            inserted=written.inserted,
            updated=written.updated,
            duplicates=dedup.duplicates,
            conflicts=dedup.conflicts,
            import_run_id=run_id,
            report=dedup.report,
        )

    def _persist_dedup_outcome(self, records) -> None:
        for record in records:
            if record.staging_id is None:
                continue
            self.staging.update_fields(
                record.staging_id,
                commit=False,
                norm_name=record.name,
                duplicate_hint=record.duplicate_hint,
            )
        self.session.commit()
