"""
SQLAlchemy models for the ingestion schema.

Import runs record pipeline bookkeeping, staging rows hold raw per-source
imports until the clean-and-merge job promotes them, and the merge history
table is the append-only audit of every deduplication decision.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db, utc_now
from .enums import ImportRunKind, ImportRunStatus, MergeReason, MergeType, SourceSystem


class ImmutableRecordError(RuntimeError):
    """Raised when code attempts to modify an append-only audit row."""


class ImportRun(BaseModel):
    """Metadata describing a single ingestion or clean-and-merge execution."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[ImportRunKind] = mapped_column(
        Enum(ImportRunKind, name="import_run_kind_enum"),
        nullable=False,
        default=ImportRunKind.INGESTION,
        index=True,
    )
    source_system: Mapped[SourceSystem | None] = mapped_column(
        Enum(SourceSystem, name="source_system_enum"),
        nullable=True,
        index=True,
    )
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.CREATED,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    total: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    inserted: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    updated: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    duplicates: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    conflicts: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    report_json: Mapped[str | None] = mapped_column(
        db.Text,
        nullable=True,
        comment="Serialized dedup report, truncated to INGEST_REPORT_MAX_CHARS.",
    )
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    staging_rows = relationship("StagingContact", back_populates="import_run", passive_deletes=True)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None


class StagingContact(BaseModel):
    """Raw contact imported from one source system, plus its cleaned fields."""

    __tablename__ = "staging_contacts"
    __table_args__ = (
        UniqueConstraint("source_system", "source_record_id", name="uq_staging_contacts_source_record"),
        Index("idx_staging_contacts_source_imported", "source_system", "imported_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    import_run_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_runs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    source_system: Mapped[SourceSystem] = mapped_column(
        Enum(SourceSystem, name="source_system_enum"),
        nullable=False,
    )
    source_record_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    raw_name: Mapped[str | None] = mapped_column(db.String(255))
    raw_email: Mapped[str | None] = mapped_column(db.String(255))
    raw_phone: Mapped[str | None] = mapped_column(db.String(64))
    raw_company: Mapped[str | None] = mapped_column(db.String(255))
    relationship_type: Mapped[str | None] = mapped_column(db.String(50))
    data_owner_name: Mapped[str | None] = mapped_column(db.String(255))
    imported_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    norm_name: Mapped[str | None] = mapped_column(db.String(255))
    norm_email: Mapped[str | None] = mapped_column(db.String(255))
    norm_phone_e164: Mapped[str | None] = mapped_column(db.String(32))
    norm_company: Mapped[str | None] = mapped_column(db.String(255))
    quality_score: Mapped[int | None] = mapped_column(db.Integer)
    duplicate_hint: Mapped[str | None] = mapped_column(db.String(255))

    import_run = relationship("ImportRun", back_populates="staging_rows")


class MergeHistory(BaseModel):
    """Append-only audit entry for one deduplication decision."""

    __tablename__ = "merge_history"
    __table_args__ = (
        Index("idx_merge_history_created", "created_at"),
        Index("idx_merge_history_reason", "merge_reason"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    merge_type: Mapped[MergeType] = mapped_column(Enum(MergeType, name="merge_type_enum"), nullable=False, index=True)
    primary_contact_id: Mapped[int | None] = mapped_column(db.Integer, nullable=True, index=True)
    primary_contact_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    merged_contact_id: Mapped[int | None] = mapped_column(db.Integer, nullable=True, index=True)
    merged_contact_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    source_system: Mapped[SourceSystem] = mapped_column(
        Enum(SourceSystem, name="source_system_enum"),
        nullable=False,
        index=True,
    )
    source_record_id: Mapped[str | None] = mapped_column(db.String(255))
    merge_reason: Mapped[MergeReason] = mapped_column(Enum(MergeReason, name="merge_reason_enum"), nullable=False)
    merge_details: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    before_merge_quality_score: Mapped[int | None] = mapped_column(db.Integer)
    after_merge_quality_score: Mapped[int | None] = mapped_column(db.Integer)
    involved_source_systems: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    created_by: Mapped[str | None] = mapped_column(db.String(100), default="system")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "mergeType": self.merge_type.value,
            "primaryContactId": self.primary_contact_id,
            "primaryContactName": self.primary_contact_name,
            "mergedContactId": self.merged_contact_id,
            "mergedContactName": self.merged_contact_name,
            "sourceSystem": self.source_system.value,
            "sourceRecordId": self.source_record_id,
            "mergeReason": self.merge_reason.value,
            "mergeDetails": self.merge_details,
            "beforeMergeQualityScore": self.before_merge_quality_score,
            "afterMergeQualityScore": self.after_merge_quality_score,
            "involvedSourceSystems": self.involved_source_systems,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "createdBy": self.created_by,
        }


@event.listens_for(MergeHistory, "before_update")
def _reject_merge_history_update(mapper, connection, target):
    raise ImmutableRecordError(f"Merge history entry {target.id} is append-only and cannot be modified.")
