"""Persistence error taxonomy.

``ConflictError`` is the only error callers are expected to recover from (by
re-reading and retrying). Every other store failure is a ``StoreIOError``.
Absence is not an error: lookups return ``None``.
"""

from __future__ import annotations


class DocumentStoreError(RuntimeError):
    """Base class for document store errors."""


class ConflictError(DocumentStoreError):
    """Raised when an optimistic version check or id uniqueness check fails."""

    def __init__(
        self,
        message: str = "conflict while writing document",
        *,
        table: str | None = None,
        entity_id: str | None = None,
        expected_version: int | None = None,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.entity_id = entity_id
        self.expected_version = expected_version


class StoreIOError(DocumentStoreError):
    """Raised for any failure talking to the backing store."""


class StoreBusyError(StoreIOError):
    """Raised when bounded busy retries are exhausted."""


class StoreCorruptionError(StoreIOError):
    """Raised when SQLite reports possible corruption."""


class StoreAsyncPolicyError(StoreIOError):
    """Raised when sync DB I/O is attempted from an active async event loop."""


class TransactionScopeError(DocumentStoreError):
    """Raised when a unit-of-work is used after it was committed or rolled back."""


__all__ = [
    "ConflictError",
    "DocumentStoreError",
    "StoreAsyncPolicyError",
    "StoreBusyError",
    "StoreCorruptionError",
    "StoreIOError",
    "TransactionScopeError",
]
