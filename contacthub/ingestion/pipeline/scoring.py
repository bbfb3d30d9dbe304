"""Deterministic 0-100 quality score for cleaned contacts."""

from __future__ import annotations

from config.scoring import DEFAULT_PROFILE, MAX_SCORE, ScoringProfile
from contacthub.ingestion.pipeline.normalize import UNKNOWN, validate_email, validate_phone
from contacthub.models.enums import RelationshipType, SourceSystem


def calculate_quality_score(
    *,
    mobile_e164: str | None,
    email: str | None,
    company: str | None,
    relationship_type: RelationshipType | str | None,
    source_system: SourceSystem | str | None,
    profile: ScoringProfile | None = None,
) -> int:
    """Sum the profile weights for each satisfied signal, capped at ``MAX_SCORE``."""
    profile = profile or DEFAULT_PROFILE
    weights = profile.weights
    score = 0

    if mobile_e164 and validate_phone(mobile_e164, profile.default_region):
        score += weights.mobile
    if email and validate_email(email):
        score += weights.email
    if company and company.strip() and company != UNKNOWN:
        score += weights.company
    relationship_value = relationship_type.value if isinstance(relationship_type, RelationshipType) else relationship_type
    if relationship_value and str(relationship_value).strip():
        score += weights.relationship
    if profile.is_trusted(source_system):
        score += weights.trusted_source

    return max(0, min(score, MAX_SCORE))
