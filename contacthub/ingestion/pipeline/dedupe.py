"""
Deterministic deduplication of cleaned contacts against the canonical store.

Only exact matches are acted on: a record whose name and mobile number both
equal a canonical contact, or a record emitted earlier in the same pass, is a
duplicate; a record without a mobile number whose name equals one is a name
conflict. Both are kept as separate contacts under a disambiguated
``"<name> (DUP #n)"`` name and recorded in the merge history ledger.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from contacthub.ingestion.pipeline.clean import CleanContact
from contacthub.ingestion.pipeline.merge_history import MergeHistoryEntry, MergeHistoryLedger
from contacthub.models.contact import Contact
from contacthub.models.enums import MergeReason, MergeType, SourceSystem

logger = logging.getLogger(__name__)

EXACT_MATCH_REASON = "Same name and mobile number (exact match)"
NAME_CONFLICT_REASON = "Same name but no mobile number"

_SUFFIX_PATTERN = re.compile(r"^(?P<base>.*?) \((?P<suffix>[^()]*)\)$")
_DIGITS_PATTERN = re.compile(r"\d+")


def _split_suffix(name: str) -> tuple[str, str | None]:
    match = _SUFFIX_PATTERN.match(name)
    if match is None:
        return name, None
    return match.group("base"), match.group("suffix")


def find_duplicate_suffix(name: str, known_names: Iterable[str]) -> str:
    """
    Return ``name`` unchanged when nothing collides, otherwise ``"<base> (DUP #n)"``.

    ``n`` is one more than the largest integer found in the suffixes of the
    colliding names (a bare base counts as 0).
    """

    base, _ = _split_suffix(name)
    highest: int | None = None
    for known in known_names:
        if not known:
            continue
        known_base, suffix = _split_suffix(known)
        if known == base:
            number = 0
        elif known_base == base and suffix is not None:
            numbers = [int(token) for token in _DIGITS_PATTERN.findall(suffix)]
            number = max(numbers) if numbers else 0
        else:
            continue
        highest = number if highest is None else max(highest, number)

    if highest is None:
        return name
    return f"{base} (DUP #{highest + 1})"


@dataclass
class DedupResult:
    records: list[CleanContact]
    duplicates: int = 0
    conflicts: int = 0
    report: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class MatchedContact:
    """The contact a record collided with, from the store or earlier in the pass."""

    contact_id: int | None
    name: str
    quality_score: int | None
    source_system: SourceSystem


BatchKeys = frozenset[tuple[SourceSystem, str]]


class Deduplicator:
    """
    Resolve cleaned records against ``contacts`` and log every decision.

    Canonical rows that belong to a record of the current pass are ignored;
    those records are represented by what the pass has already emitted for
    them. Earlier records therefore keep their names and later ones take the
    ``DUP #n`` suffixes, and repeating a pass over the same staging rows
    yields the same names every time.
    """

    def __init__(self, session: Session, ledger: MergeHistoryLedger | None = None) -> None:
        self.session = session
        self.ledger = ledger or MergeHistoryLedger(session)

    def deduplicate(self, records: Sequence[CleanContact]) -> DedupResult:
        result = DedupResult(records=[])
        batch_keys: BatchKeys = frozenset((record.source_system, record.source_record_id) for record in records)

        for record in records:
            try:
                if record.mobile_e164:
                    processed = self._resolve_with_phone(record, batch_keys, result)
                else:
                    processed = self._resolve_without_phone(record, batch_keys, result)
            except Exception:
                logger.exception(
                    "Deduplication failed for %s; passing it through unchanged",
                    record.source_record_id,
                    extra={"source_system": record.source_system.value, "source_record_id": record.source_record_id},
                )
                processed = record
            result.records.append(processed)

        logger.info(
            "Deduplicated %s contacts: %s duplicates, %s conflicts",
            len(result.records),
            result.duplicates,
            result.conflicts,
        )
        return result

    # ------------------------------------------------------------------
    # Resolution branches
    # ------------------------------------------------------------------

    def _resolve_with_phone(
        self,
        record: CleanContact,
        batch_keys: BatchKeys,
        result: DedupResult,
    ) -> CleanContact:
        existing = self._canonical_match(
            batch_keys,
            Contact.name == record.name,
            Contact.mobile_e164 == record.mobile_e164,
        ) or self._earlier_match(
            result.records,
            lambda earlier: earlier.name == record.name and earlier.mobile_e164 == record.mobile_e164,
        )
        if existing is not None:
            new_name = self._disambiguate(record, batch_keys, result.records)
            self._record_merge(
                record,
                existing,
                new_name=new_name,
                reason=MergeReason.EXACT_MATCH,
                reason_text=EXACT_MATCH_REASON,
            )
            result.duplicates += 1
            result.report.append(self._report_entry("duplicate", record, new_name, EXACT_MATCH_REASON))
            return replace(record, name=new_name, duplicate_hint=f"Duplicate of {existing.name}")

        sharing = self._canonical_match(
            batch_keys,
            Contact.mobile_e164 == record.mobile_e164,
            Contact.name != record.name,
        ) or self._earlier_match(
            result.records,
            lambda earlier: earlier.mobile_e164 == record.mobile_e164 and earlier.name != record.name,
        )
        if sharing is not None:
            logger.debug(
                "%s shares mobile number with %s; kept as a new contact",
                record.name,
                sharing.name,
                extra={"source_record_id": record.source_record_id},
            )
            return replace(record, duplicate_hint=f"Shares mobile number with {sharing.name}")
        return replace(record, duplicate_hint=None)

    def _resolve_without_phone(
        self,
        record: CleanContact,
        batch_keys: BatchKeys,
        result: DedupResult,
    ) -> CleanContact:
        existing = self._canonical_match(batch_keys, Contact.name == record.name) or self._earlier_match(
            result.records,
            lambda earlier: earlier.name == record.name,
        )
        if existing is None:
            return record

        new_name = self._disambiguate(record, batch_keys, result.records)
        self._record_merge(
            record,
            existing,
            new_name=new_name,
            reason=MergeReason.SIMILAR_NAME,
            reason_text=NAME_CONFLICT_REASON,
        )
        result.conflicts += 1
        result.report.append(self._report_entry("conflict", record, new_name, NAME_CONFLICT_REASON))
        return replace(record, name=new_name, duplicate_hint=f"Name conflict with {existing.name}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _canonical_match(self, batch_keys: BatchKeys, *criteria) -> MatchedContact | None:
        stmt = select(Contact).where(*criteria).order_by(Contact.id.asc())
        for contact in self.session.scalars(stmt):
            if (contact.source_system, contact.source_record_id) in batch_keys:
                continue
            return MatchedContact(
                contact_id=contact.id,
                name=contact.name,
                quality_score=contact.data_quality_score,
                source_system=contact.source_system,
            )
        return None

    def _earlier_match(
        self,
        earlier_records: Sequence[CleanContact],
        predicate: Callable[[CleanContact], bool],
    ) -> MatchedContact | None:
        for earlier in earlier_records:
            if not predicate(earlier):
                continue
            # Not written yet on the first pass over this record.
            contact_id = self.session.scalar(
                select(Contact.id).where(
                    Contact.source_system == earlier.source_system,
                    Contact.source_record_id == earlier.source_record_id,
                )
            )
            return MatchedContact(
                contact_id=contact_id,
                name=earlier.name,
                quality_score=earlier.quality_score,
                source_system=earlier.source_system,
            )
        return None

    def _disambiguate(
        self,
        record: CleanContact,
        batch_keys: BatchKeys,
        earlier_records: Sequence[CleanContact],
    ) -> str:
        base, _ = _split_suffix(record.name)
        stmt = select(Contact.name, Contact.source_system, Contact.source_record_id).where(
            or_(Contact.name == base, Contact.name.startswith(f"{base} (", autoescape=True)),
        )
        known = [name for name, source, record_id in self.session.execute(stmt) if (source, record_id) not in batch_keys]
        known.extend(earlier.name for earlier in earlier_records)
        return find_duplicate_suffix(record.name, known)

    def _record_merge(
        self,
        record: CleanContact,
        existing: MatchedContact,
        *,
        new_name: str,
        reason: MergeReason,
        reason_text: str,
    ) -> None:
        self.ledger.record(
            MergeHistoryEntry(
                merge_type=MergeType.DEDUPLICATION,
                merge_reason=reason,
                primary_contact_id=existing.contact_id,
                primary_contact_name=existing.name,
                merged_contact_name=record.name,
                source_system=record.source_system,
                source_record_id=record.source_record_id,
                merge_details={
                    "originalName": record.name,
                    "newName": new_name,
                    "reason": reason_text,
                    "sourceSystem": record.source_system.value,
                    "qualityScore": record.quality_score,
                    "stagingContactId": record.staging_id,
                },
                before_merge_quality_score=existing.quality_score,
                after_merge_quality_score=existing.quality_score,
                involved_source_systems=(existing.source_system, record.source_system),
            )
        )

    @staticmethod
    def _report_entry(kind: str, record: CleanContact, new_name: str, reason: str) -> dict[str, Any]:
        return {
            "type": kind,
            "originalName": record.name,
            "newName": new_name,
            "sourceSystem": record.source_system.value,
            "sourceRecordId": record.source_record_id,
            "reason": reason,
        }
