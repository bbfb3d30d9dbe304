"""
Upsert cleaned contacts into the canonical directory and link them to owners.

Both passes commit record by record: a failing record is rolled back, logged
and counted, and the rest of the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from contacthub.ingestion.pipeline.clean import CleanContact
from contacthub.models.contact import Contact, ContactOwner, Owner
from contacthub.models.enums import SourceSystem

logger = logging.getLogger(__name__)

DEFAULT_OWNER_NAME = "Unknown Owner"


@dataclass
class WriteSummary:
    inserted: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated


@dataclass
class OwnerAssociationSummary:
    owners_created: int = 0
    associations_created: int = 0
    associations_existing: int = 0
    skipped: int = 0
    failed: int = 0


class ContactWriter:
    """Idempotent writer keyed by ``(source_system, source_record_id)``."""

    def __init__(self, session: Session, *, default_owner_name: str = DEFAULT_OWNER_NAME) -> None:
        self.session = session
        self.default_owner_name = default_owner_name or DEFAULT_OWNER_NAME

    def write_contacts_to_final(self, records: Sequence[CleanContact]) -> WriteSummary:
        summary = WriteSummary()
        for record in records:
            try:
                created = self._upsert(record)
                self.session.commit()
            except Exception:
                self.session.rollback()
                summary.failed += 1
                logger.exception(
                    "Failed to write contact %s",
                    record.source_record_id,
                    extra={"source_system": record.source_system.value, "source_record_id": record.source_record_id},
                )
                continue
            if created:
                summary.inserted += 1
            else:
                summary.updated += 1

        logger.info(
            "Wrote %s contacts (%s inserted, %s updated, %s failed)",
            summary.total,
            summary.inserted,
            summary.updated,
            summary.failed,
        )
        return summary

    def associate_with_owners(self, records: Sequence[CleanContact]) -> OwnerAssociationSummary:
        summary = OwnerAssociationSummary()
        for record in records:
            owner_name = (record.data_owner_name or "").strip() or self.default_owner_name
            try:
                owner = self._find_owner(owner_name)
                if owner is None:
                    owner = Owner(name=owner_name, is_active=True)
                    self.session.add(owner)
                    self.session.flush()
                    summary.owners_created += 1

                contact = self.find_contact(record.source_system, record.source_record_id)
                if contact is None:
                    summary.skipped += 1
                    self.session.commit()
                    continue

                link = self.session.scalars(
                    select(ContactOwner).where(
                        ContactOwner.contact_id == contact.id,
                        ContactOwner.owner_id == owner.id,
                    )
                ).first()
                if link is None:
                    self.session.add(ContactOwner(contact_id=contact.id, owner_id=owner.id))
                    summary.associations_created += 1
                else:
                    summary.associations_existing += 1
                self.session.commit()
            except Exception:
                self.session.rollback()
                summary.failed += 1
                logger.exception(
                    "Failed to associate contact %s with owner %s",
                    record.source_record_id,
                    owner_name,
                    extra={"source_system": record.source_system.value, "source_record_id": record.source_record_id},
                )

        logger.info(
            "Owner associations: %s created, %s existing, %s skipped",
            summary.associations_created,
            summary.associations_existing,
            summary.skipped,
            extra={"owners_created": summary.owners_created, "association_failures": summary.failed},
        )
        return summary

    def find_contact(self, source_system: SourceSystem, source_record_id: str) -> Contact | None:
        stmt = select(Contact).where(
            Contact.source_system == source_system,
            Contact.source_record_id == source_record_id,
        )
        return self.session.scalars(stmt).first()

    def _find_owner(self, name: str) -> Owner | None:
        return self.session.scalars(select(Owner).where(Owner.name == name)).first()

    def _upsert(self, record: CleanContact) -> bool:
        contact = self.find_contact(record.source_system, record.source_record_id)
        if contact is None:
            self.session.add(
                Contact(
                    name=record.name,
                    company_name=record.company,
                    email=record.email,
                    mobile_e164=record.mobile_e164,
                    relationship_type=record.relationship_type,
                    source_system=record.source_system,
                    source_record_id=record.source_record_id,
                    data_quality_score=record.quality_score,
                    is_whatsapp_reachable=True,
                )
            )
            return True

        contact.name = record.name
        contact.company_name = record.company
        contact.data_quality_score = record.quality_score
        if record.email is not None:
            contact.email = record.email
        if record.mobile_e164 is not None:
            contact.mobile_e164 = record.mobile_e164
        if record.relationship_type is not None:
            contact.relationship_type = record.relationship_type
        return False
