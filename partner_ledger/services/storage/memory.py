"""
In-Memory Storage Implementation

Used by the test-suite and for single-process local use. Behaves like the
remote backends where it matters: documents are deep-copied on the way in
and out, every write bumps a version and a `lastUpdated` timestamp, and
every write is pushed to every subscriber, the writer included.
"""

import copy
from datetime import datetime, timezone
from typing import Optional

import structlog

from partner_ledger.models.audit import AuditEvent
from partner_ledger.services.storage.interface import (
    LAST_UPDATED_KEY,
    VERSION_KEY,
    AuditStorageInterface,
    DocumentNotFoundError,
    DocumentStoreInterface,
    DuplicateError,
    SnapshotCallback,
    Unsubscribe,
)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dictionary-backed document store with synchronous push delivery."""

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._password_hashes: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        self._subscribers: dict[str, list[SnapshotCallback]] = {}
        self._logger = structlog.get_logger(__name__)

    def _stamp(self, workspace_id: str, document: dict) -> datetime:
        now = datetime.now(timezone.utc)
        version = self._versions.get(workspace_id, 0) + 1
        self._versions[workspace_id] = version
        stored = copy.deepcopy(document)
        stored[LAST_UPDATED_KEY] = now.isoformat()
        stored[VERSION_KEY] = version
        self._documents[workspace_id] = stored
        return now

    def _publish(self, workspace_id: str) -> None:
        snapshot = self._documents[workspace_id]
        # Copy the list: a callback may unsubscribe while we iterate
        for callback in list(self._subscribers.get(workspace_id, [])):
            try:
                callback(copy.deepcopy(snapshot))
            except Exception as e:
                self._logger.error(
                    "snapshot_callback_failed",
                    workspace_id=workspace_id,
                    error=str(e),
                )

    async def create_document(
        self,
        workspace_id: str,
        document: dict,
        password_hash: str,
    ) -> datetime:
        if workspace_id in self._documents:
            raise DuplicateError(f"Workspace already exists: {workspace_id}")
        self._password_hashes[workspace_id] = password_hash
        return self._stamp(workspace_id, document)

    async def get_document(self, workspace_id: str) -> dict:
        if workspace_id not in self._documents:
            raise DocumentNotFoundError(f"Workspace not found: {workspace_id}")
        return copy.deepcopy(self._documents[workspace_id])

    async def set_document(self, workspace_id: str, document: dict) -> datetime:
        if workspace_id not in self._documents:
            raise DocumentNotFoundError(f"Workspace not found: {workspace_id}")
        written_at = self._stamp(workspace_id, document)
        self._publish(workspace_id)
        return written_at

    async def get_password_hash(self, workspace_id: str) -> str:
        if workspace_id not in self._password_hashes:
            raise DocumentNotFoundError(f"Workspace not found: {workspace_id}")
        return self._password_hashes[workspace_id]

    def subscribe(self, workspace_id: str, on_change: SnapshotCallback) -> Unsubscribe:
        callbacks = self._subscribers.setdefault(workspace_id, [])
        callbacks.append(on_change)

        def unsubscribe() -> None:
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    def subscriber_count(self, workspace_id: str) -> int:
        return len(self._subscribers.get(workspace_id, []))

    def version(self, workspace_id: str) -> Optional[int]:
        return self._versions.get(workspace_id)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
