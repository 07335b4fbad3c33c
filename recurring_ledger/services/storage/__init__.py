"""
Storage Services Package

Provides the abstract storage interfaces and their implementations:
SQLite for real use, in-memory for tests and dry runs.
"""

from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    TransientStorageError,
    storage_retry,
)
from recurring_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from recurring_ledger.services.storage.sqlite_store import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "storage_retry",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    "TransientStorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteLedgerStorage",
]
