"""
Append-only merge history ledger.

Every deduplication decision is written here exactly once. Rows are never
updated (the model rejects updates at flush time); the read helpers back the
``contacts merge-history`` CLI commands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from contacthub.models.base import utc_now
from contacthub.models.enums import EMAIL_SOURCES, MergeReason, MergeType, SourceSystem
from contacthub.models.ingestion import MergeHistory

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 200
RECENT_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class MergeHistoryEntry:
    """Values for one ledger row."""

    merge_type: MergeType
    merge_reason: MergeReason
    primary_contact_name: str
    merged_contact_name: str
    source_system: SourceSystem
    primary_contact_id: int | None = None
    merged_contact_id: int | None = None
    source_record_id: str | None = None
    merge_details: Mapping[str, Any] | None = None
    before_merge_quality_score: int | None = None
    after_merge_quality_score: int | None = None
    involved_source_systems: Sequence[SourceSystem | str] = ()


@dataclass(frozen=True)
class MergeHistoryFilters:
    contact_id: int | None = None
    merge_type: MergeType | None = None
    sources: tuple[SourceSystem, ...] = field(default_factory=tuple)
    start: datetime | None = None
    end: datetime | None = None
    email_only: bool = False
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def coerce(
        cls,
        *,
        contact_id: int | str | None = None,
        merge_type: str | None = None,
        sources: Iterable[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        email_only: bool = False,
        page: int | str | None = None,
        limit: int | str | None = None,
    ) -> "MergeHistoryFilters":
        if start and end and start > end:
            raise ValueError("start must be before end.")
        return cls(
            contact_id=int(contact_id) if contact_id not in (None, "") else None,
            merge_type=MergeType(str(merge_type).strip().upper()) if merge_type else None,
            sources=tuple(SourceSystem.coerce(value) for value in (sources or ()) if value),
            start=start,
            end=end,
            email_only=bool(email_only),
            page=max(1, int(page or DEFAULT_PAGE)),
            limit=min(max(1, int(limit or DEFAULT_LIMIT)), MAX_LIMIT),
        )


@dataclass(slots=True)
class MergeHistoryPage:
    items: list[MergeHistory]
    total: int
    page: int
    limit: int


@dataclass(slots=True)
class MergeStatistics:
    total_merges: int
    merges_by_type: dict[str, int]
    merges_by_reason: dict[str, int]
    merges_by_source: dict[str, int]
    recent_merges: int
    email_source_stats: dict[str, int]

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalMerges": self.total_merges,
            "mergesByType": self.merges_by_type,
            "mergesByReason": self.merges_by_reason,
            "mergesBySource": self.merges_by_source,
            "recentMerges": self.recent_merges,
            "emailSourceStats": self.email_source_stats,
        }


class MergeHistoryLedger:
    """Write and query the merge history table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record(self, entry: MergeHistoryEntry) -> MergeHistory:
        """Append and commit one entry; a failed insert is rolled back and re-raised."""
        involved = [SourceSystem.coerce(source).value for source in entry.involved_source_systems]
        row = MergeHistory(
            merge_type=entry.merge_type,
            merge_reason=entry.merge_reason,
            primary_contact_id=entry.primary_contact_id,
            primary_contact_name=entry.primary_contact_name,
            merged_contact_id=entry.merged_contact_id,
            merged_contact_name=entry.merged_contact_name,
            source_system=entry.source_system,
            source_record_id=entry.source_record_id,
            merge_details=dict(entry.merge_details) if entry.merge_details is not None else None,
            before_merge_quality_score=entry.before_merge_quality_score,
            after_merge_quality_score=entry.after_merge_quality_score,
            involved_source_systems=involved,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.debug(
            "Merge history recorded for %s",
            entry.merged_contact_name,
            extra={
                "merge_reason": entry.merge_reason.value,
                "source_system": entry.source_system.value,
                "source_record_id": entry.source_record_id,
            },
        )
        return row

    def list_entries(self, filters: MergeHistoryFilters | None = None) -> MergeHistoryPage:
        filters = filters or MergeHistoryFilters()
        stmt = select(MergeHistory)
        if filters.contact_id is not None:
            stmt = stmt.where(
                or_(
                    MergeHistory.primary_contact_id == filters.contact_id,
                    MergeHistory.merged_contact_id == filters.contact_id,
                )
            )
        if filters.merge_type is not None:
            stmt = stmt.where(MergeHistory.merge_type == filters.merge_type)
        if filters.email_only:
            stmt = stmt.where(MergeHistory.source_system.in_(EMAIL_SOURCES))
        elif filters.sources:
            stmt = stmt.where(MergeHistory.source_system.in_(filters.sources))
        if filters.start is not None:
            stmt = stmt.where(MergeHistory.created_at >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(MergeHistory.created_at <= filters.end)

        total = int(self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
        items = self.session.scalars(
            stmt.order_by(MergeHistory.created_at.desc(), MergeHistory.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        ).all()
        return MergeHistoryPage(items=list(items), total=total, page=filters.page, limit=filters.limit)

    def for_contact(self, contact_id: int) -> list[MergeHistory]:
        stmt = (
            select(MergeHistory)
            .where(or_(MergeHistory.primary_contact_id == contact_id, MergeHistory.merged_contact_id == contact_id))
            .order_by(MergeHistory.created_at.desc(), MergeHistory.id.desc())
        )
        return list(self.session.scalars(stmt))

    def statistics(self, *, now: datetime | None = None) -> MergeStatistics:
        now = now or utc_now()

        def grouped(column, *predicates) -> dict[str, int]:
            stmt = select(column, func.count()).group_by(column)
            for predicate in predicates:
                stmt = stmt.where(predicate)
            return {key.value if hasattr(key, "value") else str(key): count for key, count in self.session.execute(stmt)}

        total = int(self.session.scalar(select(func.count(MergeHistory.id))) or 0)
        recent = int(
            self.session.scalar(
                select(func.count(MergeHistory.id)).where(MergeHistory.created_at >= now - RECENT_WINDOW)
            )
            or 0
        )
        return MergeStatistics(
            total_merges=total,
            merges_by_type=grouped(MergeHistory.merge_type),
            merges_by_reason=grouped(MergeHistory.merge_reason),
            merges_by_source=grouped(MergeHistory.source_system),
            recent_merges=recent,
            email_source_stats=grouped(MergeHistory.source_system, MergeHistory.source_system.in_(EMAIL_SOURCES)),
        )
