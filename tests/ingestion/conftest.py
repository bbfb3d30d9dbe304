from __future__ import annotations

from itertools import count
from typing import Any, Mapping, Sequence

import pytest

from contacthub.ingestion.adapters.base import StagingContactPayload
from contacthub.ingestion.factory import build_orchestrator
from contacthub.ingestion.pipeline.clean import CleanContact
from contacthub.models import Contact, RelationshipType, SourceSystem, StagingContact, db
from contacthub.models.base import utc_now

_ids = count(1)


@pytest.fixture
def staged_contact_factory(app):
    def _factory(
        *,
        source_system: SourceSystem = SourceSystem.INVOICE,
        source_record_id: str | None = None,
        raw_name: str | None = "John Doe",
        raw_phone: str | None = "9876543210",
        raw_email: str | None = None,
        raw_company: str | None = None,
        relationship_type: str | None = None,
        data_owner_name: str | None = None,
    ) -> StagingContact:
        row = StagingContact(
            source_system=source_system,
            source_record_id=source_record_id or f"stg-{next(_ids)}",
            raw_name=raw_name,
            raw_phone=raw_phone,
            raw_email=raw_email,
            raw_company=raw_company,
            relationship_type=relationship_type,
            data_owner_name=data_owner_name,
            imported_at=utc_now(),
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _factory


@pytest.fixture
def contact_factory(app):
    def _factory(
        *,
        name: str = "John Doe",
        mobile_e164: str | None = "+919876543210",
        email: str | None = None,
        company_name: str = "Unknown",
        source_system: SourceSystem = SourceSystem.ZOHO,
        source_record_id: str | None = None,
        data_quality_score: int = 50,
    ) -> Contact:
        contact = Contact(
            name=name,
            mobile_e164=mobile_e164,
            email=email,
            company_name=company_name,
            source_system=source_system,
            source_record_id=source_record_id or f"canon-{next(_ids)}",
            data_quality_score=data_quality_score,
        )
        db.session.add(contact)
        db.session.commit()
        return contact

    return _factory


@pytest.fixture
def clean_contact():
    def _build(
        name: str = "John Doe",
        *,
        mobile_e164: str | None = "+919876543210",
        source_system: SourceSystem = SourceSystem.GMAIL,
        source_record_id: str | None = None,
        email: str | None = None,
        company: str = "Unknown",
        relationship_type: RelationshipType | None = None,
        data_owner_name: str | None = None,
        quality_score: int = 40,
    ) -> CleanContact:
        return CleanContact(
            staging_id=None,
            source_system=source_system,
            source_record_id=source_record_id or f"clean-{next(_ids)}",
            name=name,
            company=company,
            email=email,
            mobile_e164=mobile_e164,
            relationship_type=relationship_type,
            data_owner_name=data_owner_name,
            quality_score=quality_score,
        )

    return _build


@pytest.fixture
def orchestrator(app):
    return build_orchestrator(app)


class StubAdapter:
    """In-memory adapter returning fixed rows, or raising from ``fetch_contacts``."""

    def __init__(
        self,
        source_system: SourceSystem,
        rows: Sequence[Mapping[str, Any]] = (),
        *,
        error: Exception | None = None,
    ) -> None:
        self.source_system = source_system
        self.rows = list(rows)
        self.error = error

    def fetch_contacts(self):
        if self.error is not None:
            raise self.error
        return list(self.rows)

    def transform_to_staging(self, contacts):
        return [
            StagingContactPayload(
                source_system=self.source_system,
                source_record_id=str(row["id"]),
                raw_name=row.get("name"),
                raw_phone=row.get("phone"),
                raw_email=row.get("email"),
                raw_company=row.get("company"),
                relationship_type=row.get("relationship"),
                data_owner_name=row.get("owner"),
            )
            for row in contacts
        ]


@pytest.fixture
def stub_adapter():
    return StubAdapter
