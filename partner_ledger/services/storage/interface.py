"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the remote document store.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep the sync controller decoupled from storage implementation

The store is a versioned key-value document service: one JSON document per
workspace, overwritten whole on every write (never patched), plus a push
channel that reports every confirmed write to every subscriber.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable

from partner_ledger.models.audit import AuditEvent


# Keys the store adds to every document it returns
LAST_UPDATED_KEY = "lastUpdated"
VERSION_KEY = "version"

SnapshotCallback = Callable[[dict], None]
Unsubscribe = Callable[[], None]


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the workspace document store.

    Any storage implementation (Google Sheets, Firestore, HTTP/JSON, ...)
    must implement these methods.
    """

    @abstractmethod
    async def create_document(
        self,
        workspace_id: str,
        document: dict,
        password_hash: str,
    ) -> datetime:
        """
        Create a new workspace document.

        The password hash is stored beside the document, never inside it.

        Raises:
            DuplicateError: If the workspace already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_document(self, workspace_id: str) -> dict:
        """
        Fetch the full workspace document.

        Returns:
            The document, including `lastUpdated` and `version`

        Raises:
            DocumentNotFoundError: If the workspace does not exist
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def set_document(self, workspace_id: str, document: dict) -> datetime:
        """
        Overwrite the full workspace document.

        Returns:
            The server-assigned `lastUpdated` timestamp

        Raises:
            DocumentNotFoundError: If the workspace does not exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_password_hash(self, workspace_id: str) -> str:
        """
        Fetch the stored password hash.

        Raises:
            DocumentNotFoundError: If the workspace does not exist
        """
        pass

    @abstractmethod
    def subscribe(self, workspace_id: str, on_change: SnapshotCallback) -> Unsubscribe:
        """
        Register for pushed snapshots of a workspace.

        `on_change` receives the full document once per confirmed write,
        including writes made by the subscriber itself.

        Returns:
            A callable that releases the subscription. Calling it twice is safe.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Workspace document not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to create a workspace that already exists."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
