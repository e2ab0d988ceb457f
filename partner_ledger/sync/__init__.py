"""Workspace synchronization package."""

from partner_ledger.sync.controller import (
    ChangeCallback,
    ErrorCallback,
    SyncState,
    WorkspaceSyncController,
)

__all__ = [
    "ChangeCallback",
    "ErrorCallback",
    "SyncState",
    "WorkspaceSyncController",
]
