"""Pure normalization helpers for staged contact fields.

Every helper is side-effect free and never raises on bad input: values that
cannot be normalized become ``None`` (phone, email) or the ``"Unknown"``
placeholder (name, company).
"""

from __future__ import annotations

import re

import phonenumbers
from phonenumbers import NumberParseException

UNKNOWN = "Unknown"
DEFAULT_REGION = "IN"

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_STRIP_PATTERN = re.compile(r"[\s\-()]")


def _clean_text(value: object | None) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_name(value: object | None) -> str:
    return _clean_text(value) or UNKNOWN


def normalize_email(value: object | None) -> str | None:
    return _clean_text(value) or None


def validate_email(value: object | None) -> bool:
    """Advisory syntax check; invalid emails are kept, they just score lower."""
    if not value or not isinstance(value, str):
        return False
    return bool(_EMAIL_PATTERN.match(value))


def _calling_code_prefix(region: str) -> str:
    return "+91" if region.upper() == "IN" else "+1"


def normalize_phone(value: object | None, default_region: str = DEFAULT_REGION) -> str | None:
    """
    Return the E.164 form of ``value`` or ``None``.

    Whitespace, parentheses and dashes are stripped before parsing against
    ``default_region``. If that parse raises, the cleaned digits are retried
    with the region's calling code prepended.
    """

    cleaned = _PHONE_STRIP_PATTERN.sub("", _clean_text(value))
    if not cleaned:
        return None

    region = (default_region or DEFAULT_REGION).upper()
    try:
        parsed = phonenumbers.parse(cleaned, region)
    except NumberParseException:
        try:
            parsed = phonenumbers.parse(_calling_code_prefix(region) + cleaned.lstrip("+"), None)
        except NumberParseException:
            return None

    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def validate_phone(value: object | None, default_region: str = DEFAULT_REGION) -> bool:
    return normalize_phone(value, default_region) is not None


def extract_company_from_email(email: object | None) -> str:
    """Derive a company label from the first domain label (``ada@acme.co`` -> ``Acme``)."""
    if not isinstance(email, str) or not validate_email(email):
        return UNKNOWN
    domain = email.split("@", 1)[1]
    label = domain.split(".", 1)[0]
    if not label:
        return UNKNOWN
    return label[:1].upper() + label[1:]


def normalize_company(value: object | None, email: object | None = None) -> str:
    company = _clean_text(value) or UNKNOWN
    if company == UNKNOWN and email:
        return extract_company_from_email(email)
    return company
