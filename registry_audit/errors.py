"""Error types raised by the orphan analysis and action layers."""
from __future__ import annotations


class RegistryAuditError(Exception):
    """Base class for registry audit failures."""


class DataFetchError(RegistryAuditError):
    """The registry or the feature store could not be read; no analysis is produced."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ValidationError(RegistryAuditError):
    """A request was rejected before any mutation was attempted."""


class MutationError(RegistryAuditError):
    """A single archive/delete/keep call failed."""

    def __init__(self, record_id: str, message: str):
        super().__init__(message)
        self.record_id = record_id


class RecordNotFoundError(MutationError):
    def __init__(self, record_id: str):
        super().__init__(record_id, f"Feature record not found: {record_id}")


class IllegalTransitionError(MutationError):
    def __init__(self, record_id: str, current: str, target: str):
        super().__init__(record_id, f"Cannot move review status from '{current}' to '{target}'")
        self.current = current
        self.target = target
