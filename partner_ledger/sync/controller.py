"""
Workspace Sync Controller

Owns the in-memory mirror of one workspace and keeps it in step with the
remote document store.

STATE MACHINE:
    DISCONNECTED --(initial fetch ok)--> SYNCED
    SYNCED --(mutation)--> SAVING --(write ack)--> SYNCED
    SAVING --(write failure)--> SAVE_FAILED --(next successful save)--> SYNCED
    any --(remote snapshot)--> mirror replaced (SAVING is left to its ack)

RULES:
1. Every mutation changes the mirror first, then calls save().
2. save() while a save is in flight is DROPPED, not queued. The next
   mutation's save() carries every change made in between.
3. A failed save is surfaced and NOT rolled back: the next successful save
   carries the change. If the process ends first, the change is lost.
4. Remote snapshots win. They replace the whole mirror, including the
   selected project; a selection that no longer exists becomes None.
5. Remote failures never raise out of load() or save(). They are reported
   through `on_error` and `last_error`.

All entry points run on one event loop, one at a time per client, so the
in-flight flag is the only guard needed.
"""

import asyncio
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from partner_ledger.audit import AuditLogger
from partner_ledger.config import LedgerSettings, get_settings
from partner_ledger.errors import NotFoundError, SyncError, ValidationError
from partner_ledger.ledger import (
    IdGenerator,
    ProjectRegistry,
    TransactionStore,
    filter_transactions,
    project_report,
    project_totals,
    rewrite_partner_names,
    settlement_draft,
)
from partner_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from partner_ledger.models.ledger import (
    PartnerSettings,
    Project,
    Transaction,
    TransactionDraft,
    TransactionType,
    WorkspaceState,
)
from partner_ledger.models.reports import ProjectReport, ProjectTotals
from partner_ledger.models.validation import ValidationIssue, ValidationResult
from partner_ledger.services.storage import (
    DocumentStoreInterface,
    StorageError,
    Unsubscribe,
)
from partner_ledger.validation import TransactionValidator


T = TypeVar("T")

ErrorCallback = Callable[[SyncError], None]
ChangeCallback = Callable[[WorkspaceState], None]


class SyncState(str, Enum):
    """Connection state of one workspace mirror."""
    DISCONNECTED = "disconnected"
    SYNCED = "synced"
    SAVING = "saving"
    SAVE_FAILED = "save_failed"


class WorkspaceSyncController:
    """
    The single writer of one client's workspace mirror.

    Args:
        workspace_id: Workspace document key in the store
        store: Remote document store
        audit_logger: Optional audit logger for ledger events
        validator: Transaction validator (default built from settings)
        id_generator: Id source shared by projects and transactions
        settings: Ledger settings (tolerance, timeouts)
        on_error: Called with every surfaced SyncError
        on_change: Called with a copy of the state after every remote snapshot
    """

    def __init__(
        self,
        workspace_id: str,
        store: DocumentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        id_generator: Optional[IdGenerator] = None,
        settings: Optional[LedgerSettings] = None,
        on_error: Optional[ErrorCallback] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self._workspace_id = workspace_id
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._ids = id_generator or IdGenerator()
        self._transactions = TransactionStore(
            validator or TransactionValidator(self._settings),
            self._ids,
        )
        self._on_error = on_error
        self._on_change = on_change
        self._tolerance = Decimal(str(self._settings.settlement_tolerance))
        self._timeout = self._settings.remote_timeout_seconds

        self._state = WorkspaceState()
        self._sync_state = SyncState.DISCONNECTED
        self._saving = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self.last_error: Optional[SyncError] = None
        self._logger = structlog.get_logger(__name__).bind(workspace_id=workspace_id)

    # =========================================================================
    # STATE ACCESS
    # =========================================================================

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    @property
    def sync_state(self) -> SyncState:
        return self._sync_state

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    @property
    def state(self) -> WorkspaceState:
        """A deep copy of the mirror. Mutate through the controller only."""
        return self._state.model_copy(deep=True)

    @property
    def settings(self) -> PartnerSettings:
        return self._state.settings.model_copy()

    @property
    def current_project_id(self) -> Optional[int]:
        return self._state.current_project_id

    @property
    def _registry(self) -> ProjectRegistry:
        return ProjectRegistry(self._state, self._ids)

    @property
    def current_project(self) -> Optional[Project]:
        project = self._registry.current_project
        return project.model_copy(deep=True) if project else None

    def get_project(self, project_id: int) -> Optional[Project]:
        project = self._registry.get_project(project_id)
        return project.model_copy(deep=True) if project else None

    def list_projects(self) -> list[Project]:
        """Projects newest first."""
        return [p.model_copy(deep=True) for p in self._registry.list_projects()]

    def transactions(
        self,
        transaction_type: Optional[TransactionType] = None,
        project_id: Optional[int] = None,
    ) -> list[Transaction]:
        """Transactions of a project (default: current) newest date first."""
        project = self._require_project(project_id)
        return filter_transactions(project.transactions, transaction_type)

    def project_report(self, project_id: Optional[int] = None) -> ProjectReport:
        """Totals, net flow, balances and settlement recommendation of a project."""
        project = self._require_project(project_id)
        return project_report(project, self._state.settings, self._tolerance)

    def all_projects_report(self) -> ProjectTotals:
        """Expense and revenue totals across every project."""
        return project_totals(self._state.projects)

    def validate_draft(self, draft: TransactionDraft) -> ValidationResult:
        """Check a draft against the current partners without recording it."""
        return self._transactions.validator.validate(draft, self._state.settings)

    def _require_project(self, project_id: Optional[int] = None) -> Project:
        if project_id is None:
            project = self._registry.current_project
            if project is None:
                raise NotFoundError("Please select a project first.")
            return project
        project = self._registry.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    # =========================================================================
    # SYNCHRONIZATION
    # =========================================================================

    async def _remote(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self._timeout)

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _surface(self, error: SyncError, event: AuditEvent) -> None:
        self.last_error = error
        if self._on_error:
            self._on_error(error)
        await self._audit(event)

    def _replace_state(self, state: WorkspaceState) -> None:
        if state.find_project(state.current_project_id) is None:
            state.current_project_id = None
        self._state = state
        self._ids.seed(state.max_id())

    async def load(self) -> bool:
        """
        Initial fetch of the workspace.

        On failure the error is surfaced and the mirror keeps its empty
        default. Returns True on success.
        """
        try:
            document = await self._remote(self._store.get_document(self._workspace_id))
            state = WorkspaceState.from_document(document)
        except (StorageError, asyncio.TimeoutError, PydanticValidationError) as e:
            await self._surface(
                SyncError("Failed to load data. Please refresh."),
                AuditEventBuilder.external_service_error(
                    service="document_store",
                    error_message=str(e),
                    workspace_id=self._workspace_id,
                ),
            )
            return False

        self._replace_state(state)
        self._sync_state = SyncState.SYNCED
        self.last_error = None
        await self._audit(AuditEventBuilder.sync_event(
            AuditEventType.WORKSPACE_LOADED,
            self._workspace_id,
            f"Workspace loaded with {len(state.projects)} projects",
            details={"projects": len(state.projects)},
        ))
        return True

    def subscribe(self) -> None:
        """Attach to the store's push channel. At most one subscription is active."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._workspace_id, self.apply_snapshot)

    def close(self) -> None:
        """Release the push subscription. Safe to call more than once."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            self._logger.info("workspace_unsubscribed")

    async def connect(self) -> bool:
        """Initial fetch, then subscribe. Returns the result of the fetch."""
        loaded = await self.load()
        self.subscribe()
        return loaded

    async def __aenter__(self) -> "WorkspaceSyncController":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def apply_snapshot(self, document: dict) -> bool:
        """
        Replace the mirror with a pushed snapshot (last write wins).

        A snapshot that does not parse is rejected and the mirror is kept.
        Returns True if the snapshot was applied.
        """
        try:
            state = WorkspaceState.from_document(document)
        except PydanticValidationError as e:
            self._logger.error("snapshot_rejected", error=str(e))
            self.last_error = SyncError("Received an unreadable update from the server.")
            if self._on_error:
                self._on_error(self.last_error)
            return False

        previous_selection = self._state.current_project_id
        self._replace_state(state)
        if self._sync_state != SyncState.SAVING:
            self._sync_state = SyncState.SYNCED

        self._logger.info(
            "snapshot_applied",
            version=document.get("version"),
            projects=len(state.projects),
            selection_cleared=(
                previous_selection is not None and state.current_project_id is None
            ),
        )
        if self._on_change:
            self._on_change(self.state)
        return True

    async def save(self) -> bool:
        """
        Write the full mirror to the store.

        Returns True when the write was acknowledged, False when it failed
        or was dropped because another save is in flight.
        """
        if self._saving:
            self._logger.debug("save_skipped", reason="save_in_flight")
            return False

        self._saving = True
        self._sync_state = SyncState.SAVING
        document = self._state.to_document()
        try:
            await self._remote(self._store.set_document(self._workspace_id, document))
        except (StorageError, asyncio.TimeoutError) as e:
            self._sync_state = SyncState.SAVE_FAILED
            await self._surface(
                SyncError("Failed to save. Changes may not be synced."),
                AuditEventBuilder.save_failed(self._workspace_id, str(e) or type(e).__name__),
            )
            return False
        finally:
            self._saving = False

        self._sync_state = SyncState.SYNCED
        self.last_error = None
        self._logger.debug("save_succeeded")
        return True

    # =========================================================================
    # PROJECT MUTATIONS
    # =========================================================================

    async def create_project(self, name: str) -> Project:
        """
        Create a project and select it.

        Raises:
            ValidationError: If the name is empty
        """
        project = self._registry.create_project(name)
        self._registry.select_project(project.id)
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_CREATED,
            self._workspace_id,
            project.id,
            f"Project created: {project.name}",
        ))
        await self.save()
        return project.model_copy(deep=True)

    async def rename_project(self, project_id: int, new_name: str) -> Project:
        """
        Raises:
            ValidationError: If the name is empty
            NotFoundError: If the project does not exist
        """
        old_name = self._require_project(project_id).name
        project = self._registry.rename_project(project_id, new_name)
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_RENAMED,
            self._workspace_id,
            project_id,
            f"Project renamed to {project.name}",
            details={"old_name": old_name, "new_name": project.name},
        ))
        await self.save()
        return project.model_copy(deep=True)

    async def delete_project(self, project_id: int) -> Project:
        """
        Delete a project with all its transactions.

        Raises:
            NotFoundError: If the project does not exist
        """
        project = self._registry.delete_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_DELETED,
            self._workspace_id,
            project_id,
            f"Project deleted: {project.name}",
            details={"transactions_removed": len(project.transactions)},
        ))
        await self.save()
        return project

    async def select_project(self, project_id: Optional[int]) -> Optional[Project]:
        """
        Select a project, or clear the selection with None.

        The selection is part of the shared document, so this saves.

        Raises:
            NotFoundError: If the project does not exist
        """
        if project_id is None:
            self._registry.clear_selection()
            await self.save()
            return None

        project = self._registry.select_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_SELECTED,
            self._workspace_id,
            project_id,
            f"Project selected: {project.name}",
        ))
        await self.save()
        return project.model_copy(deep=True)

    async def clear_project(self, project_id: Optional[int] = None) -> int:
        """
        Delete every transaction of a project (default: current).

        Returns the number of transactions removed.
        """
        project = self._require_project(project_id)
        removed = self._transactions.clear(project)
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_CLEARED,
            self._workspace_id,
            project.id,
            f"All transactions cleared from {project.name}",
            details={"transactions_removed": removed},
        ))
        await self.save()
        return removed

    async def set_project_settled(self, project_id: int, is_settled: bool) -> Project:
        """
        Store the manual settled bookmark.

        Nothing is recorded in the ledger and the live settlement status is
        not affected.
        """
        self._require_project(project_id)
        project = self._registry.set_settled_flag(project_id, is_settled)
        await self._audit(AuditEventBuilder.project_event(
            AuditEventType.PROJECT_SETTLED_FLAG_CHANGED,
            self._workspace_id,
            project_id,
            f"Project marked {'settled' if is_settled else 'open'}",
            details={"is_settled": is_settled},
        ))
        await self.save()
        return project.model_copy(deep=True)

    # =========================================================================
    # TRANSACTION MUTATIONS
    # =========================================================================

    async def _rejected(self, project: Project, error: ValidationError) -> None:
        issues = [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in error.issues
            if isinstance(i, ValidationIssue)
        ]
        await self._audit(AuditEventBuilder.transaction_rejected(
            self._workspace_id,
            project.id,
            issues,
        ))

    async def record_transaction(
        self,
        draft: TransactionDraft,
        project_id: Optional[int] = None,
    ) -> Transaction:
        """
        Record a new transaction in a project (default: current).

        Raises:
            ValidationError: If the draft is invalid (nothing recorded)
            NotFoundError: If there is no such project
        """
        project = self._require_project(project_id)
        try:
            transaction = self._transactions.record(project, draft, self._state.settings)
        except ValidationError as e:
            await self._rejected(project, e)
            raise

        await self._audit(AuditEventBuilder.transaction_event(
            AuditEventType.TRANSACTION_RECORDED,
            self._workspace_id,
            project.id,
            transaction.id,
            f"{transaction.type.value.capitalize()} of {transaction.amount} recorded",
            details={"type": transaction.type.value, "amount": str(transaction.amount)},
        ))
        await self.save()
        return transaction

    async def edit_transaction(
        self,
        transaction_id: int,
        draft: TransactionDraft,
        project_id: Optional[int] = None,
    ) -> Transaction:
        """
        Replace a transaction in place, keeping its id.

        Raises:
            ValidationError: If the draft is invalid (nothing changed)
            NotFoundError: If the project or transaction does not exist
        """
        project = self._require_project(project_id)
        try:
            transaction = self._transactions.edit(
                project, transaction_id, draft, self._state.settings
            )
        except ValidationError as e:
            await self._rejected(project, e)
            raise
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        await self._audit(AuditEventBuilder.transaction_event(
            AuditEventType.TRANSACTION_EDITED,
            self._workspace_id,
            project.id,
            transaction.id,
            f"{transaction.type.value.capitalize()} {transaction.id} edited",
            details={"type": transaction.type.value, "amount": str(transaction.amount)},
        ))
        await self.save()
        return transaction

    async def delete_transaction(
        self,
        transaction_id: int,
        project_id: Optional[int] = None,
    ) -> Transaction:
        """
        Raises:
            NotFoundError: If the project or transaction does not exist
        """
        project = self._require_project(project_id)
        transaction = self._transactions.delete(project, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        await self._audit(AuditEventBuilder.transaction_event(
            AuditEventType.TRANSACTION_DELETED,
            self._workspace_id,
            project.id,
            transaction.id,
            f"{transaction.type.value.capitalize()} {transaction.id} deleted",
        ))
        await self.save()
        return transaction

    async def record_recommended_settlement(
        self,
        project_id: Optional[int] = None,
        on: Optional[date] = None,
    ) -> Optional[Transaction]:
        """
        Record the settlement the engine currently recommends.

        Returns None (and records nothing) if the project is already settled.
        """
        report = self.project_report(project_id)
        draft = settlement_draft(report.settlement, on=on)
        if draft is None:
            return None
        return await self.record_transaction(draft, project_id=report.project_id)

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def update_settings(self, partner_a_name: str, partner_b_name: str) -> int:
        """
        Rename the partners.

        Every transaction field naming an old partner is rewritten to the new
        name across all projects, so balances are unchanged.

        Returns:
            Number of paid_by / received_by fields rewritten

        Raises:
            ValidationError: If a name is empty or both names are equal
        """
        try:
            new_settings = PartnerSettings(
                partner_a_name=partner_a_name,
                partner_b_name=partner_b_name,
            )
        except PydanticValidationError as e:
            raise ValidationError(
                "Please enter two different names for the partners.",
                [ValidationIssue(
                    field=".".join(str(loc) for loc in err["loc"]) or "settings",
                    issue_type=err["type"],
                    message=err["msg"],
                    severity="error",
                ) for err in e.errors()],
            ) from e

        old_settings = self._state.settings
        rewritten = rewrite_partner_names(
            self._state.projects,
            {
                old_settings.partner_a_name: new_settings.partner_a_name,
                old_settings.partner_b_name: new_settings.partner_b_name,
            },
        )
        self._state.settings = new_settings

        await self._audit(AuditEventBuilder.partners_renamed(
            self._workspace_id,
            old_settings.partners,
            new_settings.partners,
            rewritten,
        ))
        await self.save()
        return rewritten
