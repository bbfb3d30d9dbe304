"""
Source adapter registry.

Provider integrations register a factory per source system; the orchestrator
resolves one when a run is started without an explicit adapter. File imports
bypass the registry and build a ``CSVContactAdapter`` directly.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from contacthub.ingestion.adapters.base import ContactAdapter
from contacthub.ingestion.errors import AdapterNotRegistered
from contacthub.models.enums import SourceSystem

AdapterFactory = Callable[..., ContactAdapter]


@dataclass(frozen=True)
class AdapterDescriptor:
    """Metadata describing a registered adapter."""

    source_system: SourceSystem
    title: str
    summary: str | None = None


class AdapterRegistry:
    def __init__(self) -> None:
        self._factories: "OrderedDict[SourceSystem, tuple[AdapterDescriptor, AdapterFactory]]" = OrderedDict()

    def register(
        self,
        source_system: SourceSystem | str,
        factory: AdapterFactory,
        *,
        title: str | None = None,
        summary: str | None = None,
        replace: bool = False,
    ) -> AdapterDescriptor:
        source = SourceSystem.coerce(source_system)
        if source in self._factories and not replace:
            raise ValueError(f"An adapter is already registered for {source.value}.")
        descriptor = AdapterDescriptor(source_system=source, title=title or source.value.title(), summary=summary)
        self._factories[source] = (descriptor, factory)
        return descriptor

    def unregister(self, source_system: SourceSystem | str) -> None:
        self._factories.pop(SourceSystem.coerce(source_system), None)

    def resolve(self, source_system: SourceSystem | str, **options: Any) -> ContactAdapter:
        """Instantiate the adapter registered for ``source_system``."""
        source = SourceSystem.coerce(source_system)
        try:
            _, factory = self._factories[source]
        except KeyError:
            raise AdapterNotRegistered(
                f"No adapter registered for {source.value}. Register one or pass a file to import."
            ) from None
        return factory(**options)

    def is_registered(self, source_system: SourceSystem | str) -> bool:
        return SourceSystem.coerce(source_system) in self._factories

    def descriptors(self) -> tuple[AdapterDescriptor, ...]:
        return tuple(descriptor for descriptor, _ in self._factories.values())

    def __len__(self) -> int:
        return len(self._factories)


def describe(descriptors: Iterable[AdapterDescriptor]) -> list[dict[str, Any]]:
    return [
        {"sourceSystem": descriptor.source_system.value, "title": descriptor.title, "summary": descriptor.summary}
        for descriptor in descriptors
    ]
