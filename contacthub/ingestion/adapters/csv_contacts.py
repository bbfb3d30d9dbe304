"""CSV adapter for contact exports.

Reads a flat-file export (phone address book, mailbox contact export,
spreadsheet dump) with flexible header aliases and turns each usable row into
a ``StagingContactPayload`` for the given source system.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import IO, Iterator, Mapping, Sequence

from contacthub.ingestion.adapters.base import RawContact, StagingContactPayload
from contacthub.ingestion.pipeline.staging import compute_checksum
from contacthub.models.enums import SourceSystem

HEADER_ALIASES: Mapping[str, str] = {
    "name": "name",
    "full_name": "name",
    "display_name": "name",
    "email": "email",
    "email_address": "email",
    "phone": "phone",
    "mobile": "phone",
    "mobile_number": "phone",
    "phone_number": "phone",
    "company": "company",
    "company_name": "company",
    "organization": "company",
    "relationship_type": "relationship_type",
    "relationship": "relationship_type",
    "owner": "data_owner_name",
    "data_owner_name": "data_owner_name",
    "id": "source_record_id",
    "external_id": "source_record_id",
    "source_record_id": "source_record_id",
}


class CSVAdapterError(Exception):
    """Base exception for CSV adapter failures."""


class CSVHeaderError(CSVAdapterError):
    """Raised when the header row has no recognizable name or phone column."""


def normalize_header(header: str | None) -> str:
    token = (header or "").strip().lstrip("\ufeff").lower()
    return "_".join(token.replace("-", " ").split())


@dataclass
class CSVContactStatistics:
    """Accumulated statistics from CSV parsing."""

    rows_processed: int = 0
    rows_skipped_blank: int = 0
    rows_skipped_incomplete: int = 0
    ignored_headers: list[str] = field(default_factory=list)


def _row_is_blank(row: Mapping[str, object | None]) -> bool:
    return all(value is None or (isinstance(value, str) and value.strip() == "") for value in row.values())


class CSVContactAdapter:
    """File-backed ``ContactAdapter`` for any source system."""

    def __init__(
        self,
        file_obj: IO[str],
        *,
        source_system: SourceSystem | str = SourceSystem.MOBILE,
        owner_name: str | None = None,
    ) -> None:
        self._file_obj = file_obj
        self.source_system = SourceSystem.coerce(source_system)
        self.owner_name = owner_name
        self.statistics = CSVContactStatistics()

    def _prepare_reader(self) -> csv.DictReader:
        self._file_obj.seek(0)
        reader = csv.DictReader(self._file_obj)
        if reader.fieldnames is None:
            raise CSVHeaderError("CSV file is empty; expected a header row.")

        canonical: list[str] = []
        for header in reader.fieldnames:
            normalized = normalize_header(header)
            target = HEADER_ALIASES.get(normalized)
            if target is None or target in canonical:
                self.statistics.ignored_headers.append(header)
                canonical.append(f"_ignored_{normalized}")
            else:
                canonical.append(target)
        if "name" not in canonical and "phone" not in canonical:
            raise CSVHeaderError("CSV header must include a name or phone column.")
        reader.fieldnames = canonical
        return reader

    def iter_rows(self) -> Iterator[dict[str, str | None]]:
        reader = self._prepare_reader()
        for raw_row in reader:
            row = {key: value for key, value in raw_row.items() if key and not key.startswith("_ignored_")}
            if _row_is_blank(row):
                self.statistics.rows_skipped_blank += 1
                continue
            name = (row.get("name") or "").strip()
            phone = (row.get("phone") or "").strip()
            if not name and not phone:
                self.statistics.rows_skipped_incomplete += 1
                continue
            self.statistics.rows_processed += 1
            yield row

    def fetch_contacts(self) -> list[RawContact]:
        return list(self.iter_rows())

    def transform_to_staging(self, contacts: Sequence[RawContact]) -> list[StagingContactPayload]:
        payloads: list[StagingContactPayload] = []
        for row in contacts:
            record_id = (row.get("source_record_id") or "").strip()
            if not record_id:
                identity = {key: row.get(key) for key in ("name", "email", "phone")}
                record_id = f"csv-{compute_checksum(identity)[:16]}"
            payloads.append(
                StagingContactPayload(
                    source_system=self.source_system,
                    source_record_id=record_id,
                    raw_name=row.get("name"),
                    raw_email=row.get("email"),
                    raw_phone=row.get("phone"),
                    raw_company=row.get("company"),
                    relationship_type=row.get("relationship_type"),
                    data_owner_name=row.get("data_owner_name") or self.owner_name,
                )
            )
        return payloads
