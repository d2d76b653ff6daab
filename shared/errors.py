"""Exceptions raised by repositories and services."""

from __future__ import annotations


class BackendUnavailableError(RuntimeError):
    """Raised when the backing store or a remote API cannot be reached."""


class InvalidCursorError(ValueError):
    """Raised when a page cursor does not belong to the requested ordering."""


class RecordNotFoundError(LookupError):
    """Raised when a record id does not exist in its collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection} record not found: {record_id}")
        self.collection = collection
        self.record_id = record_id


class UnknownCollectionError(KeyError):
    """Raised for a collection name that has no registered spec."""

    def __str__(self) -> str:
        return f"Unknown collection: {self.args[0]}"
