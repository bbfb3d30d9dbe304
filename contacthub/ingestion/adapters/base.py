"""
Adapter contract consumed by the ingestion orchestrator.

Provider integrations (invoice database, mail APIs, device exports) live
outside this package; they only have to satisfy ``ContactAdapter`` and emit
``StagingContactPayload`` objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from contacthub.ingestion.errors import StagingValidationError
from contacthub.models.enums import SourceSystem, UnknownSourceSystem

RawContact = Mapping[str, Any]


def _coerce_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


@dataclass(frozen=True)
class StagingContactPayload:
    """One raw contact ready for the staging store."""

    source_system: SourceSystem
    source_record_id: str
    raw_name: str | None = None
    raw_email: str | None = None
    raw_phone: str | None = None
    raw_company: str | None = None
    relationship_type: str | None = None
    data_owner_name: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StagingContactPayload":
        """
        Build a payload from adapter output, accepting snake_case or camelCase keys.

        Raises ``StagingValidationError`` for an unknown source system or a
        missing source record id.
        """

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        raw_source = pick("source_system", "sourceSystem")
        try:
            source_system = SourceSystem.coerce(raw_source)
        except UnknownSourceSystem as exc:
            raise StagingValidationError(str(exc)) from exc

        record_id = _coerce_string(pick("source_record_id", "sourceRecordId"))
        if record_id is None or not record_id.strip():
            raise StagingValidationError(f"{source_system.value} payload is missing a source record id.")

        return cls(
            source_system=source_system,
            source_record_id=record_id.strip(),
            raw_name=_coerce_string(pick("raw_name", "rawName")),
            raw_email=_coerce_string(pick("raw_email", "rawEmail")),
            raw_phone=_coerce_string(pick("raw_phone", "rawPhone")),
            raw_company=_coerce_string(pick("raw_company", "rawCompany")),
            relationship_type=_coerce_string(pick("relationship_type", "relationshipType")),
            data_owner_name=_coerce_string(pick("data_owner_name", "dataOwnerName")),
        )


@runtime_checkable
class ContactAdapter(Protocol):
    """Interface every source adapter implements."""

    source_system: SourceSystem

    def fetch_contacts(self) -> Sequence[RawContact]:
        ...

    def transform_to_staging(
        self, contacts: Sequence[RawContact]
    ) -> Sequence[StagingContactPayload | Mapping[str, Any]]:
        ...


def coerce_payloads(
    items: Sequence[StagingContactPayload | Mapping[str, Any]],
    *,
    expected_source: SourceSystem,
) -> list[StagingContactPayload]:
    """Validate adapter output and pin it to the run's source system."""
    payloads: list[StagingContactPayload] = []
    for index, item in enumerate(items, start=1):
        payload = item if isinstance(item, StagingContactPayload) else StagingContactPayload.from_mapping(item)
        if payload.source_system is not expected_source:
            raise StagingValidationError(
                f"Payload {index} is tagged {payload.source_system.value} "
                f"but the run is for {expected_source.value}."
            )
        payloads.append(payload)
    return payloads
