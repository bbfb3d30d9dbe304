"""
Quality scoring profile for cleaned staging contacts.

The pipeline loads this module to decide how much each completeness signal
contributes to a contact's 0-100 quality score and which source systems are
trusted enough to earn the trust bonus.

Configuration is file-backed so we do not require database tables. Operators
can override the defaults by pointing ``INGEST_SCORING_PROFILE_PATH`` at a JSON
or YAML document; the trusted source list alone can also be set through the
comma-separated ``TRUSTED_SOURCES`` variable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping

import yaml

from contacthub.models.enums import SourceSystem, UnknownSourceSystem

MAX_SCORE = 100


@dataclass(frozen=True)
class ScoringWeights:
    """Points awarded per completeness signal."""

    mobile: int = 40
    email: int = 20
    company: int = 15
    relationship: int = 15
    trusted_source: int = 10


@dataclass(frozen=True)
class ScoringProfile:
    """
    Container for score weights and the trusted source set.

    Attributes:
        weights: Points per signal.
        trusted_sources: Source systems that earn ``weights.trusted_source``.
        default_region: ISO region used to re-validate stored mobile numbers.
    """

    weights: ScoringWeights = ScoringWeights()
    trusted_sources: frozenset[SourceSystem] = frozenset({SourceSystem.ZOHO, SourceSystem.INVOICE})
    default_region: str = "IN"

    def is_trusted(self, source_system: SourceSystem | str | None) -> bool:
        if source_system is None:
            return False
        try:
            return SourceSystem.coerce(source_system) in self.trusted_sources
        except UnknownSourceSystem:
            return False


DEFAULT_PROFILE = ScoringProfile()


class ScoringConfigError(RuntimeError):
    """Raised when a scoring override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise ScoringConfigError(f"Scoring profile file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise ScoringConfigError(f"Unable to read scoring profile file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ScoringConfigError(f"Unable to parse scoring profile file {path}: {exc}") from exc

    if not isinstance(data, Mapping):
        raise ScoringConfigError("Scoring profile must be a JSON/YAML object.")
    return dict(data)


def _coerce_weights(raw: object | None, base: ScoringWeights) -> ScoringWeights:
    if raw is None:
        return base
    if not isinstance(raw, Mapping):
        raise ScoringConfigError("weights must be a mapping of signal name to points.")
    known = set(ScoringWeights.__dataclass_fields__)
    updates: dict[str, int] = {}
    for key, value in raw.items():
        if key not in known:
            raise ScoringConfigError(f"Unknown scoring weight '{key}'.")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ScoringConfigError(f"Weight '{key}' must be a non-negative integer.")
        updates[key] = value
    return replace(base, **updates)


def _coerce_sources(raw: Iterable[object]) -> frozenset[SourceSystem]:
    try:
        return frozenset(SourceSystem.coerce(item) for item in raw)
    except UnknownSourceSystem as exc:
        raise ScoringConfigError(str(exc)) from exc


def load_scoring_profile(
    *,
    trusted_sources: Iterable[str] | None = None,
    default_region: str | None = None,
    override_path: str | None = None,
) -> ScoringProfile:
    """
    Build the active scoring profile.

    Precedence is built-in defaults, then ``trusted_sources`` (normally the
    parsed ``TRUSTED_SOURCES`` setting), then the override file.
    """

    profile = DEFAULT_PROFILE
    if default_region:
        profile = replace(profile, default_region=default_region.strip().upper())
    if trusted_sources is not None:
        profile = replace(profile, trusted_sources=_coerce_sources(trusted_sources))

    if not override_path:
        return profile

    raw = _load_override(Path(override_path))
    weights = _coerce_weights(raw.get("weights"), profile.weights)
    sources = profile.trusted_sources
    raw_sources = raw.get("trusted_sources")
    if raw_sources is not None:
        if isinstance(raw_sources, (str, bytes)) or not isinstance(raw_sources, Iterable):
            raise ScoringConfigError("trusted_sources must be a list.")
        sources = _coerce_sources(raw_sources)
    region = str(raw.get("default_region") or profile.default_region).strip().upper()
    return ScoringProfile(weights=weights, trusted_sources=sources, default_region=region)


__all__ = [
    "DEFAULT_PROFILE",
    "MAX_SCORE",
    "ScoringConfigError",
    "ScoringProfile",
    "ScoringWeights",
    "load_scoring_profile",
]
