"""Cleaning step: normalize and score staged contacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from config.scoring import DEFAULT_PROFILE, ScoringProfile
from contacthub.ingestion.pipeline.normalize import (
    normalize_company,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from contacthub.ingestion.pipeline.scoring import calculate_quality_score
from contacthub.ingestion.pipeline.staging import StagingStore
from contacthub.models.enums import RelationshipType, SourceSystem
from contacthub.models.ingestion import StagingContact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanContact:
    """Normalized, scored view of one staged record as it flows through dedup and write."""

    staging_id: int | None
    source_system: SourceSystem
    source_record_id: str
    name: str
    company: str
    email: str | None
    mobile_e164: str | None
    relationship_type: RelationshipType | None
    data_owner_name: str | None
    quality_score: int
    duplicate_hint: str | None = None


@dataclass
class CleanSummary:
    rows_considered: int
    rows_cleaned: int
    rows_failed: int
    candidates: tuple[CleanContact, ...] = ()


def clean_record(record: StagingContact, profile: ScoringProfile = DEFAULT_PROFILE) -> CleanContact:
    email = normalize_email(record.raw_email)
    mobile = normalize_phone(record.raw_phone, profile.default_region)
    company = normalize_company(record.raw_company, email)
    relationship = RelationshipType.coerce(record.relationship_type)
    score = calculate_quality_score(
        mobile_e164=mobile,
        email=email,
        company=company,
        relationship_type=relationship,
        source_system=record.source_system,
        profile=profile,
    )
    return CleanContact(
        staging_id=record.id,
        source_system=record.source_system,
        source_record_id=record.source_record_id,
        name=normalize_name(record.raw_name),
        company=company,
        email=email,
        mobile_e164=mobile,
        relationship_type=relationship,
        data_owner_name=record.data_owner_name,
        quality_score=score,
    )


def clean_staging_contacts(
    records: Iterable[StagingContact],
    *,
    store: StagingStore,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> CleanSummary:
    """
    Normalize and score each staged row, writing the cleaned fields back in place.

    A record that fails to clean is logged and left out of the batch.
    """

    candidates: list[CleanContact] = []
    considered = failed = 0
    for record in records:
        considered += 1
        try:
            cleaned = clean_record(record, profile)
            store.update_fields(
                record.id,
                commit=False,
                norm_name=cleaned.name,
                norm_email=cleaned.email,
                norm_phone_e164=cleaned.mobile_e164,
                norm_company=cleaned.company,
                quality_score=cleaned.quality_score,
                duplicate_hint=None,
            )
        except Exception:
            failed += 1
            logger.exception(
                "Failed to clean staged contact %s",
                record.id,
                extra={"staging_contact_id": record.id, "source_record_id": record.source_record_id},
            )
            continue
        candidates.append(cleaned)

    store.session.commit()
    logger.info("Cleaned %s of %s staged contacts", len(candidates), considered, extra={"clean_failed": failed})
    return CleanSummary(
        rows_considered=considered,
        rows_cleaned=len(candidates),
        rows_failed=failed,
        candidates=tuple(candidates),
    )
