"""Exception hierarchy for the ingestion pipeline."""

from __future__ import annotations


class IngestionError(RuntimeError):
    """Base class for pipeline errors."""


class AdapterFailure(IngestionError):
    """Raised when a source adapter fails to fetch or transform contacts."""

    def __init__(self, source_system: str, message: str):
        self.source_system = source_system
        super().__init__(f"{source_system} adapter failed: {message}")


class AdapterNotRegistered(IngestionError, LookupError):
    """Raised when no adapter factory is registered for a source system."""


class StagingValidationError(IngestionError, ValueError):
    """Raised when an adapter produces a staging payload that breaks the contract."""


class PipelineFailure(IngestionError):
    """Raised internally when the clean-and-merge batch cannot complete."""
