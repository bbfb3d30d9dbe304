import json

import pytest

from config.scoring import (
    DEFAULT_PROFILE,
    ScoringConfigError,
    ScoringProfile,
    ScoringWeights,
    load_scoring_profile,
)
from config.validation import validate_environment
from contacthub.ingestion.pipeline.scoring import calculate_quality_score
from contacthub.models import RelationshipType, SourceSystem


def _score(**overrides):
    values = {
        "mobile_e164": "+919876543210",
        "email": "ada@acme.co",
        "company": "Acme",
        "relationship_type": RelationshipType.CLIENT,
        "source_system": SourceSystem.ZOHO,
    }
    values.update(overrides)
    return calculate_quality_score(**values)


def test_complete_contact_from_trusted_source_scores_100():
    assert _score() == 100


def test_untrusted_source_loses_trust_bonus():
    assert _score(source_system=SourceSystem.GMAIL) == 90


def test_each_signal_contributes_its_weight():
    assert _score(mobile_e164=None) == 60
    assert _score(email="not-an-email") == 80
    assert _score(company="Unknown") == 85
    assert _score(relationship_type=None) == 85


def test_empty_contact_scores_zero():
    assert (
        calculate_quality_score(
            mobile_e164=None,
            email=None,
            company="Unknown",
            relationship_type=None,
            source_system=SourceSystem.MOBILE,
        )
        == 0
    )


def test_score_is_capped_at_100():
    profile = ScoringProfile(weights=ScoringWeights(mobile=90, email=90))
    assert _score(profile=profile) == 100


def test_custom_trusted_sources():
    profile = ScoringProfile(trusted_sources=frozenset({SourceSystem.GMAIL}))
    assert _score(source_system=SourceSystem.GMAIL, profile=profile) == 100
    assert _score(source_system=SourceSystem.ZOHO, profile=profile) == 90


def test_load_scoring_profile_defaults():
    profile = load_scoring_profile()
    assert profile == DEFAULT_PROFILE
    assert profile.trusted_sources == frozenset({SourceSystem.ZOHO, SourceSystem.INVOICE})


def test_load_scoring_profile_trusted_sources_and_region():
    profile = load_scoring_profile(trusted_sources=["gmail", "Outlook"], default_region="us")
    assert profile.trusted_sources == frozenset({SourceSystem.GMAIL, SourceSystem.OUTLOOK})
    assert profile.default_region == "US"


def test_load_scoring_profile_yaml_override(tmp_path):
    override = tmp_path / "scoring.yaml"
    override.write_text(
        "weights:\n  mobile: 50\n  trusted_source: 0\ntrusted_sources:\n  - MOBILE\n",
        encoding="utf-8",
    )
    profile = load_scoring_profile(override_path=str(override))
    assert profile.weights.mobile == 50
    assert profile.weights.trusted_source == 0
    assert profile.weights.email == 20
    assert profile.trusted_sources == frozenset({SourceSystem.MOBILE})


def test_load_scoring_profile_json_override(tmp_path):
    override = tmp_path / "scoring.json"
    override.write_text(json.dumps({"weights": {"company": 5}}), encoding="utf-8")
    profile = load_scoring_profile(override_path=str(override))
    assert profile.weights.company == 5


@pytest.mark.parametrize(
    "document",
    [
        {"weights": {"mobile": -1}},
        {"weights": {"fax": 10}},
        {"trusted_sources": ["MYSPACE"]},
        {"trusted_sources": "ZOHO"},
    ],
)
def test_load_scoring_profile_rejects_bad_overrides(tmp_path, document):
    override = tmp_path / "scoring.json"
    override.write_text(json.dumps(document), encoding="utf-8")
    with pytest.raises(ScoringConfigError):
        load_scoring_profile(override_path=str(override))


def test_load_scoring_profile_missing_file(tmp_path):
    with pytest.raises(ScoringConfigError):
        load_scoring_profile(override_path=str(tmp_path / "missing.yaml"))


def test_validate_environment_only_checks_production(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert validate_environment("development") == (True, [])

    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    ok, errors = validate_environment("production")
    assert not ok
    assert any("DATABASE_URL" in error for error in errors)


@pytest.mark.parametrize(
    ("filename", "text"),
    [("scoring.json", "{not json"), ("scoring.yaml", "weights: [mobile: 10")],
)
def test_load_scoring_profile_rejects_unparseable_files(tmp_path, filename, text):
    override = tmp_path / filename
    override.write_text(text, encoding="utf-8")
    with pytest.raises(ScoringConfigError, match="Unable to parse"):
        load_scoring_profile(override_path=str(override))
