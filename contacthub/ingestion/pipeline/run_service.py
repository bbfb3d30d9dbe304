"""
Import run bookkeeping.

``ImportRunTracker`` owns every state transition of an ``ImportRun`` and the
read-side helpers the CLI uses (latest run, paginated listing, summaries).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from contacthub.models.base import utc_now
from contacthub.models.enums import ImportRunKind, ImportRunStatus, SourceSystem
from contacthub.models.ingestion import ImportRun

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
DEFAULT_REPORT_MAX_CHARS = 1000


class InvalidRunTransition(RuntimeError):
    """Raised when a run is moved to a state its current status does not allow."""


_ALLOWED_TRANSITIONS: Mapping[ImportRunStatus, frozenset[ImportRunStatus]] = {
    ImportRunStatus.CREATED: frozenset({ImportRunStatus.FETCHING, ImportRunStatus.SUCCEEDED, ImportRunStatus.FAILED}),
    ImportRunStatus.FETCHING: frozenset({ImportRunStatus.STAGED, ImportRunStatus.FAILED}),
    ImportRunStatus.STAGED: frozenset(),
    ImportRunStatus.SUCCEEDED: frozenset(),
    ImportRunStatus.FAILED: frozenset(),
}


def truncate_report(report: Any, max_chars: int = DEFAULT_REPORT_MAX_CHARS) -> str:
    """Serialize ``report`` and cut it to ``max_chars`` characters for storage."""
    serialized = json.dumps(report, default=str)
    return serialized[:max_chars]


def _coerce_positive_int(value: int | str | None, *, fallback: int) -> int:
    try:
        number = int(value) if value is not None else fallback
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def _coerce_status(value: ImportRunStatus | str) -> ImportRunStatus:
    if isinstance(value, ImportRunStatus):
        return value
    try:
        return ImportRunStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported run status '{value}'.") from exc


@dataclass(frozen=True)
class RunFilters:
    """Canonical set of filter options applied to import run queries."""

    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    statuses: tuple[ImportRunStatus, ...] = field(default_factory=tuple)
    sources: tuple[SourceSystem, ...] = field(default_factory=tuple)
    kind: ImportRunKind | None = None

    @classmethod
    def coerce(
        cls,
        *,
        page: int | str | None = None,
        page_size: int | str | None = None,
        statuses: Iterable[str] | None = None,
        sources: Iterable[str] | None = None,
        kind: str | None = None,
    ) -> "RunFilters":
        """Coerce mixed user input into a validated ``RunFilters`` instance."""
        resolved_statuses = tuple(_coerce_status(value) for value in (statuses or ()) if value)
        resolved_sources = tuple(SourceSystem.coerce(value) for value in (sources or ()) if value)
        resolved_kind = ImportRunKind(str(kind).strip().upper()) if kind else None
        return cls(
            page=_coerce_positive_int(page, fallback=DEFAULT_PAGE),
            page_size=min(_coerce_positive_int(page_size, fallback=DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE),
            statuses=resolved_statuses,
            sources=resolved_sources,
            kind=resolved_kind,
        )


@dataclass(slots=True)
class RunSummary:
    """Summarized representation of an import run."""

    id: int
    kind: str
    source_system: str | None
    status: str
    started_at: datetime | None
    finished_at: datetime | None
    duration_seconds: float | None
    total: int | None
    inserted: int | None
    updated: int | None
    duplicates: int | None
    conflicts: int | None
    error_summary: str | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "sourceSystem": self.source_system,
            "status": self.status,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationSeconds": self.duration_seconds,
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "duplicates": self.duplicates,
            "conflicts": self.conflicts,
            "error": self.error_summary,
        }


@dataclass(slots=True)
class RunListResult:
    """Paginated result set for import runs."""

    items: list[RunSummary]
    total: int
    page: int
    page_size: int
    total_pages: int


class ImportRunTracker:
    """Create, advance and query import runs."""

    def __init__(self, session: Session, *, report_max_chars: int = DEFAULT_REPORT_MAX_CHARS) -> None:
        self.session = session
        self.report_max_chars = report_max_chars

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        source_system: SourceSystem | None,
        *,
        kind: ImportRunKind = ImportRunKind.INGESTION,
    ) -> ImportRun:
        run = ImportRun(
            kind=kind,
            source_system=source_system,
            status=ImportRunStatus.CREATED,
            started_at=utc_now(),
        )
        self.session.add(run)
        self.session.commit()
        logger.info(
            "Import run %s created",
            run.id,
            extra={"import_run_id": run.id, "import_run_kind": kind.value, "source_system": _value(source_system)},
        )
        return run

    def mark_fetching(self, run: ImportRun) -> ImportRun:
        self._transition(run, ImportRunStatus.FETCHING)
        self.session.commit()
        return run

    def mark_staged(self, run: ImportRun, *, total: int) -> ImportRun:
        """Finish an ingestion run: records are staged and waiting for clean-and-merge."""
        self._transition(run, ImportRunStatus.STAGED)
        run.total = total
        run.finished_at = utc_now()
        self.session.commit()
        return run

    def complete(
        self,
        run: ImportRun,
        *,
        total: int,
        inserted: int,
        updated: int,
        duplicates: int,
        conflicts: int,
        report: Sequence[Mapping[str, Any]] | None = None,
    ) -> ImportRun:
        """Finish a clean-and-merge run with its totals and truncated report."""
        self._transition(run, ImportRunStatus.SUCCEEDED)
        run.total = total
        run.inserted = inserted
        run.updated = updated
        run.duplicates = duplicates
        run.conflicts = conflicts
        run.report_json = truncate_report(list(report or ()), self.report_max_chars)
        run.finished_at = utc_now()
        self.session.commit()
        return run

    def fail(self, run_id: int, error: BaseException | str) -> ImportRun | None:
        """
        Mark a run FAILED with ``finished_at`` and the error, leaving totals untouched.

        The session is rolled back first so a half-flushed batch does not leak
        into the failure record.
        """
        self.session.rollback()
        run = self.session.get(ImportRun, run_id)
        if run is None:
            logger.error("Import run %s vanished before it could be marked failed", run_id)
            return None
        run.status = ImportRunStatus.FAILED
        run.error_summary = str(error)
        run.finished_at = utc_now()
        self.session.commit()
        logger.warning(
            "Import run %s failed: %s",
            run_id,
            error,
            extra={"import_run_id": run_id, "import_run_error": str(error)},
        )
        return run

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, run_id: int) -> ImportRun | None:
        return self.session.get(ImportRun, run_id)

    def latest(
        self,
        source_system: SourceSystem | str | None = None,
        *,
        kind: ImportRunKind | None = None,
    ) -> ImportRun | None:
        stmt = select(ImportRun)
        if source_system is not None:
            stmt = stmt.where(ImportRun.source_system == SourceSystem.coerce(source_system))
        if kind is not None:
            stmt = stmt.where(ImportRun.kind == kind)
        stmt = stmt.order_by(ImportRun.started_at.desc(), ImportRun.id.desc()).limit(1)
        return self.session.scalars(stmt).first()

    def list_runs(self, filters: RunFilters) -> RunListResult:
        stmt = select(ImportRun)
        if filters.statuses:
            stmt = stmt.where(ImportRun.status.in_(filters.statuses))
        if filters.sources:
            stmt = stmt.where(ImportRun.source_system.in_(filters.sources))
        if filters.kind is not None:
            stmt = stmt.where(ImportRun.kind == filters.kind)

        total = int(self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
        if total == 0:
            return RunListResult(items=[], total=0, page=filters.page, page_size=filters.page_size, total_pages=0)

        runs = self.session.scalars(
            stmt.order_by(ImportRun.started_at.desc(), ImportRun.id.desc())
            .offset((filters.page - 1) * filters.page_size)
            .limit(filters.page_size)
        ).all()
        total_pages = (total + filters.page_size - 1) // filters.page_size
        return RunListResult(
            items=[self.summarize(run) for run in runs],
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            total_pages=total_pages,
        )

    def summarize(self, run: ImportRun) -> RunSummary:
        duration_seconds: float | None = None
        if run.started_at and run.finished_at:
            duration_seconds = (_as_aware(run.finished_at) - _as_aware(run.started_at)).total_seconds()
        return RunSummary(
            id=run.id,
            kind=run.kind.value,
            source_system=_value(run.source_system),
            status=run.status.value,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=duration_seconds,
            total=run.total,
            inserted=run.inserted,
            updated=run.updated,
            duplicates=run.duplicates,
            conflicts=run.conflicts,
            error_summary=run.error_summary,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transition(self, run: ImportRun, target: ImportRunStatus) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(run.status, frozenset())
        if target not in allowed:
            raise InvalidRunTransition(f"Import run {run.id} cannot move from {run.status.value} to {target.value}.")
        run.status = target


def _value(source_system: SourceSystem | None) -> str | None:
    return source_system.value if source_system is not None else None


def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on read.
    if value.tzinfo is None:
        return value.replace(tzinfo=utc_now().tzinfo)
    return value
