"""Staging store for raw contacts awaiting the clean-and-merge job."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from contacthub.models.base import utc_now
from contacthub.models.enums import SourceSystem
from contacthub.models.ingestion import ImportRun, StagingContact

if TYPE_CHECKING:  # pragma: no cover
    from contacthub.ingestion.adapters.base import StagingContactPayload

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

RAW_FIELDS = (
    "raw_name",
    "raw_email",
    "raw_phone",
    "raw_company",
    "relationship_type",
    "data_owner_name",
)
NORMALIZED_FIELDS = (
    "norm_name",
    "norm_email",
    "norm_phone_e164",
    "norm_company",
    "quality_score",
    "duplicate_hint",
)


@dataclass
class StagingSummary:
    """Outcome statistics for a staging operation."""

    rows_received: int
    rows_created: int
    rows_refreshed: int

    @property
    def rows_staged(self) -> int:
        return self.rows_created + self.rows_refreshed


def compute_checksum(payload: dict[str, object | None]) -> str:
    """Return a stable checksum for a payload to support idempotency."""
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class StagingStore:
    """
    Repository over ``staging_contacts``.

    Rows are keyed by ``(source_system, source_record_id)``: staging the same
    record again refreshes its raw fields and clears the cleaned ones so the
    next clean-and-merge pass recomputes them.
    """

    def __init__(self, session: Session, *, batch_size: int = BATCH_SIZE) -> None:
        self.session = session
        self.batch_size = max(1, batch_size)

    def bulk_create(
        self,
        payloads: Sequence["StagingContactPayload"],
        *,
        import_run: ImportRun | None = None,
    ) -> StagingSummary:
        by_key: dict[tuple[SourceSystem, str], "StagingContactPayload"] = {}
        for payload in payloads:
            by_key[(payload.source_system, payload.source_record_id)] = payload

        created = refreshed = 0
        keys = list(by_key)
        for start in range(0, len(keys), self.batch_size):
            batch_keys = keys[start : start + self.batch_size]
            existing = self._existing_rows(batch_keys)
            now = utc_now()
            for key in batch_keys:
                payload = by_key[key]
                row = existing.get(key)
                if row is None:
                    row = StagingContact(
                        source_system=payload.source_system,
                        source_record_id=payload.source_record_id,
                    )
                    self.session.add(row)
                    created += 1
                else:
                    for field_name in NORMALIZED_FIELDS:
                        setattr(row, field_name, None)
                    refreshed += 1
                for field_name in RAW_FIELDS:
                    setattr(row, field_name, getattr(payload, field_name))
                row.import_run_id = import_run.id if import_run is not None else None
                row.imported_at = now
            self.session.commit()

        summary = StagingSummary(rows_received=len(payloads), rows_created=created, rows_refreshed=refreshed)
        logger.info(
            "Staged %s contacts (%s new, %s refreshed)",
            summary.rows_staged,
            created,
            refreshed,
            extra={"import_run_id": import_run.id if import_run is not None else None},
        )
        return summary

    def list_contacts(self, source_system: SourceSystem | str | None = None) -> list[StagingContact]:
        """Return staged rows in import order (oldest first)."""
        stmt = select(StagingContact)
        if source_system is not None:
            stmt = stmt.where(StagingContact.source_system == SourceSystem.coerce(source_system))
        stmt = stmt.order_by(StagingContact.imported_at.asc(), StagingContact.id.asc())
        return list(self.session.scalars(stmt))

    def count(self, source_system: SourceSystem | str | None = None) -> int:
        stmt = select(func.count(StagingContact.id))
        if source_system is not None:
            stmt = stmt.where(StagingContact.source_system == SourceSystem.coerce(source_system))
        return int(self.session.scalar(stmt) or 0)

    def update_fields(self, staging_id: int, *, commit: bool = True, **fields: object) -> StagingContact:
        """Overwrite cleaned fields on one staged row in place."""
        unknown = sorted(set(fields) - set(NORMALIZED_FIELDS))
        if unknown:
            raise ValueError(f"Cannot update staging fields: {', '.join(unknown)}.")
        row = self.session.get(StagingContact, staging_id)
        if row is None:
            raise LookupError(f"Staging contact {staging_id} not found.")
        for field_name, value in fields.items():
            setattr(row, field_name, value)
        if commit:
            self.session.commit()
        return row

    def clear(self, source_system: SourceSystem | str) -> int:
        """Delete every staged row for one source; never called by the pipeline itself."""
        source = SourceSystem.coerce(source_system)
        rows = self.session.scalars(select(StagingContact).where(StagingContact.source_system == source)).all()
        for row in rows:
            self.session.delete(row)
        self.session.commit()
        logger.info("Cleared %s staged contacts for %s", len(rows), source.value)
        return len(rows)

    def _existing_rows(
        self, keys: Iterable[tuple[SourceSystem, str]]
    ) -> dict[tuple[SourceSystem, str], StagingContact]:
        keys = list(keys)
        if not keys:
            return {}
        record_ids_by_source: dict[SourceSystem, list[str]] = {}
        for source, record_id in keys:
            record_ids_by_source.setdefault(source, []).append(record_id)
        found: dict[tuple[SourceSystem, str], StagingContact] = {}
        for source, record_ids in record_ids_by_source.items():
            stmt = select(StagingContact).where(
                StagingContact.source_system == source,
                StagingContact.source_record_id.in_(record_ids),
            )
            for row in self.session.scalars(stmt):
                found[(row.source_system, row.source_record_id)] = row
        return found
