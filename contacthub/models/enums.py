# contacthub/models/enums.py
"""
Closed enumerations shared by the staging, canonical and audit tables.
"""

from __future__ import annotations

import enum


class UnknownSourceSystem(ValueError):
    """Raised when a value does not name a supported source system."""

    def __init__(self, value: object):
        self.value = value
        allowed = ", ".join(member.value for member in SourceSystem)
        super().__init__(f"Unknown source system {value!r}; expected one of: {allowed}.")


class SourceSystem(str, enum.Enum):
    """External origin of contact data."""

    INVOICE = "INVOICE"
    GMAIL = "GMAIL"
    OUTLOOK = "OUTLOOK"
    YAHOO = "YAHOO"
    ZOHO = "ZOHO"
    ASHISH = "ASHISH"
    MOBILE = "MOBILE"

    @classmethod
    def coerce(cls, value: "SourceSystem | str") -> "SourceSystem":
        """Return the member named by ``value`` or raise ``UnknownSourceSystem``."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownSourceSystem(value)
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise UnknownSourceSystem(value) from None


# Mail providers; used by merge-history queries that focus on mailbox imports.
EMAIL_SOURCES: tuple[SourceSystem, ...] = (SourceSystem.GMAIL, SourceSystem.OUTLOOK, SourceSystem.YAHOO)


def is_email_source(value: SourceSystem | str | None) -> bool:
    if value is None:
        return False
    try:
        return SourceSystem.coerce(value) in EMAIL_SOURCES
    except UnknownSourceSystem:
        return False


class RelationshipType(str, enum.Enum):
    """How the organisation relates to a contact"""

    CLIENT = "CLIENT"
    VENDOR = "VENDOR"
    LEAD = "LEAD"
    OTHER = "OTHER"

    @classmethod
    def coerce(cls, value: "RelationshipType | str | None") -> "RelationshipType | None":
        """Blank becomes None; labels outside the enum (FRIEND, WORK...) become OTHER."""
        if value is None or isinstance(value, cls):
            return value
        label = str(value).strip().upper()
        if not label:
            return None
        try:
            return cls(label)
        except ValueError:
            return cls.OTHER


class MergeType(str, enum.Enum):
    AUTO_MERGE = "AUTO_MERGE"
    MANUAL_MERGE = "MANUAL_MERGE"
    DEDUPLICATION = "DEDUPLICATION"


class MergeReason(str, enum.Enum):
    SAME_PHONE = "SAME_PHONE"
    SIMILAR_NAME = "SIMILAR_NAME"
    EXACT_MATCH = "EXACT_MATCH"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"


class ImportRunKind(str, enum.Enum):
    INGESTION = "INGESTION"
    CLEAN_MERGE = "CLEAN_MERGE"


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    CREATED = "created"
    FETCHING = "fetching"
    STAGED = "staged"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
