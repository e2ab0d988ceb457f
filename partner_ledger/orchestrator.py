"""
Main Orchestrator for Partner Ledger

This module ties the components together and defines the end-to-end
session flow:
1. Create workspace or log in (password check)
2. Connect (initial fetch + push subscription)
3. Mutate through the sync controller
4. Log out (unsubscribe, forget the workspace)

DESIGN DECISION: The application state is one explicit object (LedgerApp)
built by create_app_components(). There are no module-level globals, so
tests and several clients in one process each get their own state.
"""

from typing import Optional
from uuid import UUID

import structlog

from partner_ledger.audit import AuditLogger, create_correlation_id
from partner_ledger.config import (
    LedgerSettings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)
from partner_ledger.errors import AuthError
from partner_ledger.models.audit import AuditEventBuilder
from partner_ledger.services.auth import WorkspaceAuth, shareable_link
from partner_ledger.services.storage import (
    AuditStorageInterface,
    DocumentStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from partner_ledger.sync import ChangeCallback, ErrorCallback, WorkspaceSyncController


logger = structlog.get_logger(__name__)


class LedgerApp:
    """
    One client's session with the ledger.

    Holds at most one open workspace at a time. Logging in to another
    workspace closes the previous one first.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        on_error: Optional[ErrorCallback] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger or AuditLogger(correlation_id=create_correlation_id())
        self._auth = WorkspaceAuth(store, self._audit_logger, self._settings)
        self._on_error = on_error
        self._on_change = on_change
        self._controller: Optional[WorkspaceSyncController] = None

    @property
    def store(self) -> DocumentStoreInterface:
        return self._store

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    @property
    def correlation_id(self) -> Optional[UUID]:
        return self._audit_logger.correlation_id

    @property
    def controller(self) -> Optional[WorkspaceSyncController]:
        """Controller of the open workspace, or None when logged out."""
        return self._controller

    @property
    def workspace_id(self) -> Optional[str]:
        return self._auth.current_workspace_id

    def require_controller(self) -> WorkspaceSyncController:
        if self._controller is None:
            raise AuthError("Please log in to a workspace first.")
        return self._controller

    def share_link(self, base_url: str) -> str:
        """Link that lets the other partner open the current workspace."""
        controller = self.require_controller()
        return shareable_link(base_url, controller.workspace_id)

    async def _open(self, workspace_id: str) -> WorkspaceSyncController:
        self._close_controller()
        controller = WorkspaceSyncController(
            workspace_id,
            self._store,
            audit_logger=self._audit_logger,
            settings=self._settings,
            on_error=self._on_error,
            on_change=self._on_change,
        )
        await controller.connect()
        self._controller = controller
        return controller

    async def create_workspace(self, password: str) -> WorkspaceSyncController:
        """
        Create a workspace and open it.

        Raises:
            ValidationError: If the password is empty
            SyncError: If the store rejects the new workspace
        """
        workspace_id = await self._auth.create_workspace(password)
        logger.info("workspace_created", workspace_id=workspace_id)
        return await self._open(workspace_id)

    async def login(self, workspace_id: str, password: str) -> WorkspaceSyncController:
        """
        Verify the password and open the workspace.

        Raises:
            AuthError: If the workspace does not exist or the password is wrong
            SyncError: If the store could not be reached
        """
        await self._auth.login(workspace_id, password)
        return await self._open(self._auth.current_workspace_id)

    def _close_controller(self) -> None:
        if self._controller is not None:
            self._controller.close()
            self._controller = None

    async def logout(self) -> None:
        """Close the open workspace. Does nothing when logged out."""
        workspace_id = self._auth.current_workspace_id
        self._close_controller()
        self._auth.logout()
        if workspace_id:
            await self._audit_logger.log(AuditEventBuilder.logout(workspace_id))


def create_stores(
    store_settings: Optional[StoreSettings] = None,
) -> tuple[DocumentStoreInterface, Optional[AuditStorageInterface]]:
    """
    Build the document store and audit storage for the configured backend.

    Returns:
        (document_store, audit_storage)
    """
    store_settings = store_settings or get_settings().store

    if store_settings.backend == "google_sheets":
        sheets_client = GoogleSheetsClient()
        return (
            GoogleSheetsDocumentStore(
                sheets_client,
                poll_interval_seconds=store_settings.poll_interval_seconds,
            ),
            GoogleSheetsAuditStorage(sheets_client),
        )

    return InMemoryDocumentStore(), InMemoryAuditStorage()


def create_app_components(
    use_storage: bool = True,
    store_settings: Optional[StoreSettings] = None,
    on_error: Optional[ErrorCallback] = None,
    on_change: Optional[ChangeCallback] = None,
) -> LedgerApp:
    """
    Factory function to create the application.

    Args:
        use_storage: Whether to use the configured backend.
                    Set to False for an in-memory store (tests, demos).
        store_settings: Overrides the configured backend selection
        on_error: Called with every surfaced sync error
        on_change: Called after every remote snapshot

    Returns:
        A logged-out LedgerApp
    """
    correlation_id = create_correlation_id()

    if use_storage and store_settings is None:
        check = validate_all_settings()
        invalid = [name for name, ok in check.items() if ok is False]
        if invalid:
            logger.warning(
                "settings_invalid",
                sections=invalid,
                errors={k: v for k, v in check.items() if k.endswith("_error")},
            )
            use_storage = False

    if use_storage:
        try:
            store, audit_storage = create_stores(store_settings)
        except Exception as e:
            # Backend not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            store, audit_storage = InMemoryDocumentStore(), None
    else:
        store, audit_storage = InMemoryDocumentStore(), None

    audit_logger = AuditLogger(audit_storage, correlation_id=correlation_id)

    return LedgerApp(
        store,
        audit_logger=audit_logger,
        on_error=on_error,
        on_change=on_change,
    )
