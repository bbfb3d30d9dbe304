import io

import pytest

from contacthub.ingestion.adapters.csv_contacts import CSVContactAdapter, CSVHeaderError, normalize_header
from contacthub.models import SourceSystem
from contacthub.models.enums import UnknownSourceSystem


def _make_csv(contents: str) -> io.StringIO:
    stream = io.StringIO(contents)
    stream.seek(0)
    return stream


def test_normalize_header_handles_bom_spacing_and_dashes():
    assert normalize_header("\ufeffFull Name") == "full_name"
    assert normalize_header("  Mobile-Number ") == "mobile_number"
    assert normalize_header(None) == ""


def test_adapter_accepts_alias_headers():
    stream = _make_csv(
        "Full Name,Email Address,Mobile,Organization,Relationship,Owner,External ID\n"
        "Ada Lovelace,ada@acme.co,98765 43210,Acme,client,Priya,ext-1\n"
    )
    adapter = CSVContactAdapter(stream, source_system="gmail")

    payloads = adapter.transform_to_staging(adapter.fetch_contacts())

    assert len(payloads) == 1
    payload = payloads[0]
    assert payload.source_system is SourceSystem.GMAIL
    assert payload.source_record_id == "ext-1"
    assert payload.raw_name == "Ada Lovelace"
    assert payload.raw_email == "ada@acme.co"
    assert payload.raw_phone == "98765 43210"
    assert payload.raw_company == "Acme"
    assert payload.relationship_type == "client"
    assert payload.data_owner_name == "Priya"


def test_adapter_ignores_unknown_and_repeated_headers():
    stream = _make_csv("name,phone,notes,mobile\nAda,9876543210,hello,1111111111\n")
    adapter = CSVContactAdapter(stream)

    rows = adapter.fetch_contacts()

    assert rows == [{"name": "Ada", "phone": "9876543210"}]
    assert adapter.statistics.ignored_headers == ["notes", "mobile"]


def test_adapter_skips_blank_and_incomplete_rows():
    stream = _make_csv(
        "name,phone,email\n"
        "Ada,9876543210,\n"
        ",,\n"
        ",,orphan@example.com\n"
        ",9876500000,\n"
    )
    adapter = CSVContactAdapter(stream, source_system=SourceSystem.MOBILE)

    rows = adapter.fetch_contacts()

    assert len(rows) == 2
    assert adapter.statistics.rows_processed == 2
    assert adapter.statistics.rows_skipped_blank == 1
    assert adapter.statistics.rows_skipped_incomplete == 1


def test_adapter_derives_stable_record_ids_without_id_column():
    contents = "name,phone\nAda,9876543210\nGrace,9876500000\n"
    first = CSVContactAdapter(_make_csv(contents))
    second = CSVContactAdapter(_make_csv(contents))

    first_ids = [payload.source_record_id for payload in first.transform_to_staging(first.fetch_contacts())]
    second_ids = [payload.source_record_id for payload in second.transform_to_staging(second.fetch_contacts())]

    assert first_ids == second_ids
    assert all(record_id.startswith("csv-") for record_id in first_ids)
    assert len(set(first_ids)) == 2


def test_adapter_uses_default_owner_when_column_missing():
    adapter = CSVContactAdapter(_make_csv("name,phone\nAda,9876543210\n"), owner_name="Rahul")

    payloads = adapter.transform_to_staging(adapter.fetch_contacts())

    assert payloads[0].data_owner_name == "Rahul"


def test_adapter_rejects_header_without_name_or_phone():
    adapter = CSVContactAdapter(_make_csv("email,company\nada@acme.co,Acme\n"))

    with pytest.raises(CSVHeaderError) as excinfo:
        adapter.fetch_contacts()

    assert "name or phone" in str(excinfo.value)


def test_adapter_rejects_empty_file():
    adapter = CSVContactAdapter(_make_csv(""))

    with pytest.raises(CSVHeaderError):
        adapter.fetch_contacts()


def test_adapter_rejects_unknown_source_system():
    with pytest.raises(UnknownSourceSystem) as excinfo:
        CSVContactAdapter(_make_csv("name\nAda\n"), source_system="myspace")

    assert excinfo.value.value == "myspace"
