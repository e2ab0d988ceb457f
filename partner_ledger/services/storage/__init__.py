"""
Storage Services Package

Provides the abstract document-store interface and its implementations:
an in-memory store and a Google Sheets backend.
"""

from partner_ledger.services.storage.interface import (
    LAST_UPDATED_KEY,
    VERSION_KEY,
    AuditStorageInterface,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    SnapshotCallback,
    StorageError,
    Unsubscribe,
)
from partner_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from partner_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    "SnapshotCallback",
    "Unsubscribe",
    "LAST_UPDATED_KEY",
    "VERSION_KEY",
    # Exceptions
    "ConnectionError",
    "DocumentNotFoundError",
    "DuplicateError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
