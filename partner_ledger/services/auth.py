"""
Workspace Authentication

A workspace is protected by one shared password. Only its SHA-256 hash is
stored, beside the workspace document rather than inside it, so a client
that can read the document never sees the hash.

This is deliberately thin: there are no user accounts, sessions or roles.
"""

import hashlib
import hmac
import secrets
import string
import time
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from partner_ledger.audit import AuditLogger
from partner_ledger.config import LedgerSettings, get_settings
from partner_ledger.errors import AuthError, SyncError, ValidationError
from partner_ledger.models.audit import AuditEventBuilder
from partner_ledger.models.ledger import PartnerSettings, WorkspaceState
from partner_ledger.services.storage import (
    DocumentNotFoundError,
    DocumentStoreInterface,
    StorageError,
)


_BASE36 = string.digits + string.ascii_lowercase


def hash_password(password: str) -> str:
    """SHA-256 hex digest of a password."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def generate_workspace_id() -> str:
    """Workspace ids look like 'ws_1718000000000_k3j9x0a1b'."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"ws_{time.time_ns() // 1_000_000}_{suffix}"


def shareable_link(base_url: str, workspace_id: str) -> str:
    """Link that pre-fills the workspace id on the login page."""
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query))
    query["workspace"] = workspace_id
    return urlunsplit(parts._replace(query=urlencode(query)))


class WorkspaceAuth:
    """
    Creates workspaces and verifies their passwords.

    Tracks the workspace the client is currently logged in to.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self.current_workspace_id: Optional[str] = None

    async def create_workspace(self, password: str) -> str:
        """
        Create an empty workspace with default partner names.

        Returns:
            The new workspace id (the caller is logged in to it)

        Raises:
            ValidationError: If the password is empty
            SyncError: If the store rejects the write
        """
        if not password:
            raise ValidationError("Please enter a password.")

        workspace_id = generate_workspace_id()
        state = WorkspaceState(
            settings=PartnerSettings(
                partner_a_name=self._settings.default_partner_a_name,
                partner_b_name=self._settings.default_partner_b_name,
            ),
        )

        try:
            await self._store.create_document(
                workspace_id,
                state.to_document(),
                hash_password(password),
            )
        except StorageError as e:
            raise SyncError(f"Failed to create workspace: {e}") from e

        self.current_workspace_id = workspace_id
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.workspace_created(workspace_id))
        return workspace_id

    async def _reject(self, workspace_id: str, reason: str) -> AuthError:
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.login_failed(workspace_id, reason)
            )
        return AuthError(reason)

    async def login(self, workspace_id: str, password: str) -> WorkspaceState:
        """
        Verify the password and return the workspace state.

        Raises:
            AuthError: If the workspace does not exist or the password is wrong
            SyncError: If the store could not be reached
        """
        workspace_id = (workspace_id or "").strip()
        if not workspace_id:
            raise await self._reject(workspace_id, "Workspace not found")

        try:
            stored_hash = await self._store.get_password_hash(workspace_id)
            if not hmac.compare_digest(stored_hash, hash_password(password or "")):
                raise await self._reject(workspace_id, "Incorrect password")
            document = await self._store.get_document(workspace_id)
        except DocumentNotFoundError:
            raise await self._reject(workspace_id, "Workspace not found")
        except StorageError as e:
            raise SyncError(f"Failed to load workspace: {e}") from e

        self.current_workspace_id = workspace_id
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.login_succeeded(workspace_id))
        return WorkspaceState.from_document(document)

    def logout(self) -> None:
        self.current_workspace_id = None
