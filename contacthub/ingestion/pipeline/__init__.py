"""Ingestion pipeline stages."""

from __future__ import annotations

from .merge_history import MergeHistoryEntry, MergeHistoryFilters, MergeHistoryLedger, MergeStatistics
from .normalize import (
    extract_company_from_email,
    normalize_company,
    normalize_email,
    normalize_name,
    normalize_phone,
    validate_email,
    validate_phone,
)
from .run_service import ImportRunTracker, InvalidRunTransition, RunFilters, RunSummary, truncate_report
from .scoring import calculate_quality_score
from .staging import StagingStore, StagingSummary, compute_checksum

__all__ = [
    "ImportRunTracker",
    "InvalidRunTransition",
    "MergeHistoryEntry",
    "MergeHistoryFilters",
    "MergeHistoryLedger",
    "MergeStatistics",
    "RunFilters",
    "RunSummary",
    "StagingStore",
    "StagingSummary",
    "calculate_quality_score",
    "compute_checksum",
    "extract_company_from_email",
    "normalize_company",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "truncate_report",
    "validate_email",
    "validate_phone",
]
