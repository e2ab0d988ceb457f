"""
Services package.

Workspace authentication lives in `partner_ledger.services.auth`; it is not
re-exported here because it depends on the audit logger, which itself
depends on the storage services below.
"""

from partner_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DocumentNotFoundError",
    "DocumentStoreInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    "StorageError",
]
