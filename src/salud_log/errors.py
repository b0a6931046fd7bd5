"""Excepciones del registro de salud."""

from __future__ import annotations


class SaludLogError(Exception):
    """Base exception for all salud_log errors."""


class ValidationError(SaludLogError):
    """Raised when a write violates a field constraint."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class NotFoundError(SaludLogError):
    """Raised when an update targets an id that does not exist."""

    def __init__(self, kind: str, record_id: int) -> None:
        super().__init__(f"{kind} record {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class StorageFailure(SaludLogError):
    """Raised when the SQLite engine fails during a write."""


class ExportFailure(SaludLogError):
    """Raised when a report artifact cannot be written."""
