from __future__ import annotations

from sqlalchemy import func, select

from contacthub.ingestion.pipeline.writer import DEFAULT_OWNER_NAME, ContactWriter
from contacthub.models import Contact, ContactOwner, Owner, RelationshipType, SourceSystem, db


def _count(model) -> int:
    return db.session.scalar(select(func.count()).select_from(model))


def test_write_inserts_then_updates_by_natural_key(clean_contact):
    writer = ContactWriter(db.session)
    record = clean_contact(
        "Ada Lovelace",
        source_record_id="gmail-ada",
        email="ada@acme.co",
        company="Acme",
        relationship_type=RelationshipType.CLIENT,
        quality_score=90,
    )

    first = writer.write_contacts_to_final([record])
    second = writer.write_contacts_to_final([record])

    assert (first.inserted, first.updated, first.failed) == (1, 0, 0)
    assert (second.inserted, second.updated, second.failed) == (0, 1, 0)
    assert second.total == 1
    assert _count(Contact) == 1

    contact = writer.find_contact(SourceSystem.GMAIL, "gmail-ada")
    assert contact.name == "Ada Lovelace"
    assert contact.company_name == "Acme"
    assert contact.data_quality_score == 90
    assert contact.is_whatsapp_reachable is True


def test_update_keeps_stored_values_for_missing_fields(clean_contact):
    writer = ContactWriter(db.session)
    writer.write_contacts_to_final(
        [
            clean_contact(
                "Ada Lovelace",
                source_record_id="gmail-ada",
                email="ada@acme.co",
                relationship_type=RelationshipType.VENDOR,
            )
        ]
    )

    writer.write_contacts_to_final(
        [
            clean_contact(
                "Ada King",
                source_record_id="gmail-ada",
                mobile_e164=None,
                email=None,
                relationship_type=None,
                quality_score=10,
            )
        ]
    )

    contact = writer.find_contact(SourceSystem.GMAIL, "gmail-ada")
    assert contact.name == "Ada King"
    assert contact.email == "ada@acme.co"
    assert contact.mobile_e164 == "+919876543210"
    assert contact.relationship_type is RelationshipType.VENDOR
    assert contact.data_quality_score == 10


def test_same_record_id_from_different_sources_are_distinct(clean_contact):
    writer = ContactWriter(db.session)

    summary = writer.write_contacts_to_final(
        [
            clean_contact(source_system=SourceSystem.GMAIL, source_record_id="42"),
            clean_contact(source_system=SourceSystem.OUTLOOK, source_record_id="42"),
        ]
    )

    assert summary.inserted == 2
    assert _count(Contact) == 2


def test_associate_with_owners_creates_owner_once(clean_contact):
    writer = ContactWriter(db.session)
    records = [
        clean_contact("Ada", source_record_id="a", data_owner_name="Priya"),
        clean_contact("Grace", source_record_id="b", data_owner_name="Priya"),
    ]
    writer.write_contacts_to_final(records)

    summary = writer.associate_with_owners(records)
    again = writer.associate_with_owners(records)

    assert summary.owners_created == 1
    assert summary.associations_created == 2
    assert again.owners_created == 0
    assert again.associations_created == 0
    assert again.associations_existing == 2
    assert _count(Owner) == 1
    assert _count(ContactOwner) == 2


def test_associate_uses_default_owner_and_skips_unwritten(clean_contact):
    writer = ContactWriter(db.session)
    written = clean_contact("Ada", source_record_id="a", data_owner_name="  ")
    unwritten = clean_contact("Ghost", source_record_id="ghost")
    writer.write_contacts_to_final([written])

    summary = writer.associate_with_owners([written, unwritten])

    assert summary.associations_created == 1
    assert summary.skipped == 1
    owner = db.session.scalars(select(Owner)).one()
    assert owner.name == DEFAULT_OWNER_NAME


def test_custom_default_owner_name(clean_contact):
    writer = ContactWriter(db.session, default_owner_name="Sales Team")
    record = clean_contact("Ada", source_record_id="a")
    writer.write_contacts_to_final([record])

    writer.associate_with_owners([record])

    assert db.session.scalars(select(Owner.name)).one() == "Sales Team"


def test_unexpected_record_error_is_counted_and_skipped(clean_contact, monkeypatch):
    writer = ContactWriter(db.session)
    broken = clean_contact("Broken", source_record_id="broken")
    records = [clean_contact("Ada", source_record_id="a"), broken, clean_contact("Grace", source_record_id="b")]
    upsert = writer._upsert

    def _upsert(record):
        if record is broken:
            raise ValueError("bad payload")
        return upsert(record)

    monkeypatch.setattr(writer, "_upsert", _upsert)

    summary = writer.write_contacts_to_final(records)

    assert (summary.inserted, summary.updated, summary.failed) == (2, 0, 1)
    assert _count(Contact) == 2


def test_unexpected_association_error_is_counted_and_skipped(clean_contact, monkeypatch):
    writer = ContactWriter(db.session)
    records = [clean_contact("Ada", source_record_id="a"), clean_contact("Grace", source_record_id="b")]
    writer.write_contacts_to_final(records)
    find_contact = writer.find_contact

    def _find_contact(source_system, source_record_id):
        if source_record_id == "a":
            raise ValueError("lookup exploded")
        return find_contact(source_system, source_record_id)

    monkeypatch.setattr(writer, "find_contact", _find_contact)

    summary = writer.associate_with_owners(records)

    assert summary.failed == 1
    assert summary.associations_created == 1
    assert _count(ContactOwner) == 1
