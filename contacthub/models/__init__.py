# contacthub/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .contact import Contact, ContactOwner, Owner
from .enums import (
    EMAIL_SOURCES,
    ImportRunKind,
    ImportRunStatus,
    MergeReason,
    MergeType,
    RelationshipType,
    SourceSystem,
    UnknownSourceSystem,
    is_email_source,
)
from .ingestion import ImmutableRecordError, ImportRun, MergeHistory, StagingContact

__all__ = [
    "db",
    "BaseModel",
    "Contact",
    "ContactOwner",
    "Owner",
    "ImportRun",
    "StagingContact",
    "MergeHistory",
    "ImmutableRecordError",
    "EMAIL_SOURCES",
    "ImportRunKind",
    "ImportRunStatus",
    "MergeReason",
    "MergeType",
    "RelationshipType",
    "SourceSystem",
    "UnknownSourceSystem",
    "is_email_source",
]
