import pytest

from contacthub.ingestion.pipeline.normalize import (
    UNKNOWN,
    extract_company_from_email,
    normalize_company,
    normalize_email,
    normalize_name,
    normalize_phone,
    validate_email,
    validate_phone,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("  Ada Lovelace ", "Ada Lovelace"),
        ("", UNKNOWN),
        ("   ", UNKNOWN),
        (None, UNKNOWN),
    ],
)
def test_normalize_name(value, expected):
    assert normalize_name(value) == expected


def test_normalize_email_trims_and_keeps_case():
    assert normalize_email("  Ada@Example.COM ") == "Ada@Example.COM"
    assert normalize_email("   ") is None
    assert normalize_email(None) is None


def test_validate_email_is_syntax_only():
    assert validate_email("ada@example.com")
    assert not validate_email("ada@example")
    assert not validate_email("ada example@example.com")
    assert not validate_email(None)


def test_normalize_phone_indian_default_region():
    assert normalize_phone("98765 43210") == "+919876543210"
    assert normalize_phone("(987) 654-3210") == "+919876543210"
    assert normalize_phone("+91 98765-43210") == "+919876543210"


def test_normalize_phone_other_region():
    assert normalize_phone("650-253-0000", "US") == "+16502530000"


def test_normalize_phone_retries_with_calling_code_when_region_unparseable():
    # An unknown region makes the first parse raise; the retry prefixes +1.
    assert normalize_phone("6502530000", "ZZ") == "+16502530000"


@pytest.mark.parametrize("value", [None, "", "   ", "abc", "12345", "+0 000"])
def test_normalize_phone_returns_none_for_garbage(value):
    assert normalize_phone(value) is None


def test_validate_phone_matches_normalize():
    assert validate_phone("9876543210")
    assert not validate_phone("12345")


def test_extract_company_from_email():
    assert extract_company_from_email("ada@acme.co") == "Acme"
    assert extract_company_from_email("grace@globex.example.com") == "Globex"
    assert extract_company_from_email("not-an-email") == UNKNOWN
    assert extract_company_from_email(None) == UNKNOWN


def test_normalize_company_falls_back_to_email_domain():
    assert normalize_company("  Initech ") == "Initech"
    assert normalize_company(None, "ada@acme.co") == "Acme"
    assert normalize_company("", "broken-email") == UNKNOWN
    assert normalize_company(None) == UNKNOWN
