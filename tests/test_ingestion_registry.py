import json

import pytest

from contacthub.ingestion import register_adapter
from contacthub.ingestion.errors import AdapterNotRegistered
from contacthub.ingestion.registry import AdapterRegistry, describe
from contacthub.models import SourceSystem, UnknownSourceSystem, is_email_source


class _FakeAdapter:
    def __init__(self, **options):
        self.options = options
        self.source_system = SourceSystem.ZOHO

    def fetch_contacts(self):
        return []

    def transform_to_staging(self, contacts):
        return []


def test_register_and_resolve_passes_options():
    registry = AdapterRegistry()
    descriptor = registry.register("zoho", _FakeAdapter, summary="Zoho CRM contacts")

    adapter = registry.resolve(SourceSystem.ZOHO, page_size=200)

    assert descriptor.title == "Zoho"
    assert adapter.options == {"page_size": 200}
    assert registry.is_registered("ZOHO")
    assert len(registry) == 1


def test_register_rejects_duplicates_unless_replaced():
    registry = AdapterRegistry()
    registry.register("gmail", _FakeAdapter)

    with pytest.raises(ValueError):
        registry.register("gmail", _FakeAdapter)

    replaced = registry.register("gmail", _FakeAdapter, title="Gmail API", replace=True)
    assert replaced.title == "Gmail API"
    assert len(registry) == 1


def test_resolve_unknown_and_unregistered_sources():
    registry = AdapterRegistry()

    with pytest.raises(AdapterNotRegistered):
        registry.resolve("outlook")
    with pytest.raises(UnknownSourceSystem):
        registry.resolve("myspace")


def test_unregister_and_describe():
    registry = AdapterRegistry()
    registry.register("invoice", _FakeAdapter, title="Invoice DB")
    registry.register("yahoo", _FakeAdapter)
    registry.unregister("yahoo")

    assert not registry.is_registered("yahoo")
    assert describe(registry.descriptors()) == [{"sourceSystem": "INVOICE", "title": "Invoice DB", "summary": None}]


def test_adapters_cli_lists_registered_adapters(app, runner):
    empty = runner.invoke(args=["contacts", "adapters"])
    assert empty.exit_code == 0
    assert "No adapters registered" in empty.output

    register_adapter(app, "zoho", _FakeAdapter, title="Zoho CRM")
    result = runner.invoke(args=["contacts", "adapters"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [{"sourceSystem": "ZOHO", "title": "Zoho CRM", "summary": None}]


@pytest.mark.parametrize(
    ("value", "expected"),
    [("gmail", True), (SourceSystem.OUTLOOK, True), ("YAHOO", True), ("zoho", False), ("myspace", False), (None, False)],
)
def test_is_email_source(value, expected):
    assert is_email_source(value) is expected
