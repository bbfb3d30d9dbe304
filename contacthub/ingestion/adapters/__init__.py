"""Adapter contract and the built-in file adapter."""

from __future__ import annotations

from .base import ContactAdapter, RawContact, StagingContactPayload, coerce_payloads
from .csv_contacts import CSVAdapterError, CSVContactAdapter, CSVContactStatistics, CSVHeaderError

__all__ = [
    "ContactAdapter",
    "RawContact",
    "StagingContactPayload",
    "coerce_payloads",
    "CSVAdapterError",
    "CSVContactAdapter",
    "CSVContactStatistics",
    "CSVHeaderError",
]
