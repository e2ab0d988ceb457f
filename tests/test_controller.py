"""
Tests for the workspace sync controller.

The controller runs against the in-memory store, or against small
subclasses of it that fail, block or hang on demand.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from partner_ledger.audit import AuditLogger
from partner_ledger.config import LedgerSettings
from partner_ledger.errors import LedgerError, NotFoundError, SyncError, ValidationError
from partner_ledger.ledger import IdGenerator
from partner_ledger.models import (
    AuditEventType,
    PartnerSettings,
    Project,
    TransactionDraft,
    TransactionType,
    WorkspaceState,
)
from partner_ledger.services.auth import hash_password
from partner_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    StorageError,
)
from partner_ledger.sync import SyncState, WorkspaceSyncController


WORKSPACE = "ws_1700000000000_abcdefghi"


class FlakyStore(InMemoryDocumentStore):
    """Fails writes while `fail_writes` is set."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def set_document(self, workspace_id, document):
        if self.fail_writes:
            raise StorageError("network down")
        return await super().set_document(workspace_id, document)


class GatedStore(InMemoryDocumentStore):
    """Holds every write until `gate` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.writes = 0

    async def set_document(self, workspace_id, document):
        await self.gate.wait()
        self.writes += 1
        return await super().set_document(workspace_id, document)


class HangingStore(InMemoryDocumentStore):
    """Never answers a write."""

    async def set_document(self, workspace_id, document):
        await asyncio.sleep(3600)


def _expense(amount="100", paid_by="Partner A", description="Hosting") -> TransactionDraft:
    return TransactionDraft(
        type=TransactionType.EXPENSE,
        amount=amount,
        transaction_date="2024-03-10",
        description=description,
        paid_by=paid_by,
    )


def _revenue(amount="100", received_by="Partner B") -> TransactionDraft:
    return TransactionDraft(
        type=TransactionType.REVENUE,
        amount=amount,
        transaction_date="2024-03-11",
        description="Invoice",
        received_by=received_by,
    )


async def _seed(store: InMemoryDocumentStore, state: WorkspaceState = None) -> None:
    await store.create_document(
        WORKSPACE,
        (state or WorkspaceState()).to_document(),
        hash_password("hunter2"),
    )


async def _stored_state(store: InMemoryDocumentStore) -> WorkspaceState:
    return WorkspaceState.from_document(await store.get_document(WORKSPACE))


@pytest.fixture
def errors() -> list:
    return []


@pytest.fixture
def make_controller(ledger_settings, errors):
    def _make(store, **kwargs) -> WorkspaceSyncController:
        kwargs.setdefault("settings", ledger_settings)
        kwargs.setdefault("on_error", errors.append)
        return WorkspaceSyncController(WORKSPACE, store, **kwargs)
    return _make


class TestLoad:
    """Tests for the initial fetch."""

    @pytest.mark.asyncio
    async def test_connect_loads_and_subscribes(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        assert controller.sync_state == SyncState.DISCONNECTED

        assert await controller.connect()

        assert controller.sync_state == SyncState.SYNCED
        assert controller.is_subscribed
        assert document_store.subscriber_count(WORKSPACE) == 1

    @pytest.mark.asyncio
    async def test_load_failure_keeps_empty_state(self, document_store, make_controller, errors):
        controller = make_controller(document_store)

        assert not await controller.load()

        assert controller.sync_state == SyncState.DISCONNECTED
        assert controller.state == WorkspaceState()
        assert isinstance(controller.last_error, SyncError)
        assert errors == [controller.last_error]

    @pytest.mark.asyncio
    async def test_load_seeds_ids(self, document_store, make_controller):
        """New ids are always above every id already in the workspace."""
        state = WorkspaceState(projects=[Project(id=5000, name="Existing")])
        await _seed(document_store, state)
        controller = make_controller(document_store, id_generator=IdGenerator(clock=lambda: 1))
        await controller.load()

        project = await controller.create_project("New")
        assert project.id == 5001

    @pytest.mark.asyncio
    async def test_load_clears_dangling_selection(self, document_store, make_controller):
        await _seed(document_store, WorkspaceState(current_project_id=77))
        controller = make_controller(document_store)
        await controller.load()
        assert controller.current_project_id is None

    @pytest.mark.asyncio
    async def test_close_releases_subscription(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        controller.close()
        controller.close()

        assert not controller.is_subscribed
        assert document_store.subscriber_count(WORKSPACE) == 0

    @pytest.mark.asyncio
    async def test_async_context_manager(self, document_store, make_controller):
        await _seed(document_store)
        async with make_controller(document_store) as controller:
            assert controller.sync_state == SyncState.SYNCED
        assert document_store.subscriber_count(WORKSPACE) == 0


class TestProjectMutations:
    """Tests for project mutations through the controller."""

    @pytest.mark.asyncio
    async def test_create_project_saves_and_selects(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        project = await controller.create_project("Shop")

        assert controller.current_project_id == project.id
        stored = await _stored_state(document_store)
        assert [p.name for p in stored.projects] == ["Shop"]
        assert stored.current_project_id == project.id
        assert controller.sync_state == SyncState.SYNCED

    @pytest.mark.asyncio
    async def test_create_project_requires_name(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        with pytest.raises(ValidationError):
            await controller.create_project("  ")
        assert document_store.version(WORKSPACE) == 1

    @pytest.mark.asyncio
    async def test_rename_project(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        project = await controller.create_project("Shop")

        await controller.rename_project(project.id, "Online shop")

        stored = await _stored_state(document_store)
        assert stored.projects[0].name == "Online shop"

    @pytest.mark.asyncio
    async def test_overlong_rename_keeps_workspace_readable(self, document_store, make_controller):
        await _seed(document_store)
        alice = make_controller(document_store)
        bob = make_controller(document_store)
        await alice.connect()
        await bob.connect()
        project = await alice.create_project("Shop")
        version = document_store.version(WORKSPACE)

        with pytest.raises(ValidationError):
            await alice.rename_project(project.id, "x" * 201)

        assert alice.get_project(project.id).name == "Shop"
        assert document_store.version(WORKSPACE) == version
        fresh = make_controller(document_store)
        assert await fresh.load() is True
        assert fresh.get_project(project.id).name == "Shop"
        assert bob.last_error is None

    @pytest.mark.asyncio
    async def test_unknown_project_is_not_found(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        with pytest.raises(NotFoundError):
            await controller.rename_project(404, "Nope")
        with pytest.raises(NotFoundError):
            await controller.delete_project(404)
        with pytest.raises(NotFoundError):
            await controller.select_project(404)
        with pytest.raises(NotFoundError):
            await controller.set_project_settled(404, True)
        assert document_store.version(WORKSPACE) == 1

    @pytest.mark.asyncio
    async def test_delete_selected_project(self, document_store, make_controller):
        """Deleting the selected project removes its entries and the selection."""
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        project = await controller.create_project("Shop")
        await controller.record_transaction(_expense())

        removed = await controller.delete_project(project.id)

        assert len(removed.transactions) == 1
        assert controller.current_project is None
        assert controller.list_projects() == []
        stored = await _stored_state(document_store)
        assert stored.projects == []
        assert stored.current_project_id is None

    @pytest.mark.asyncio
    async def test_select_and_deselect(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        first = await controller.create_project("First")
        await controller.create_project("Second")

        selected = await controller.select_project(first.id)
        assert selected.id == first.id
        assert (await _stored_state(document_store)).current_project_id == first.id

        assert await controller.select_project(None) is None
        assert (await _stored_state(document_store)).current_project_id is None

    @pytest.mark.asyncio
    async def test_clear_project(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        await controller.record_transaction(_expense())
        await controller.record_transaction(_revenue())

        assert await controller.clear_project() == 2
        assert controller.transactions() == []

    @pytest.mark.asyncio
    async def test_settled_flag_does_not_change_balance(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        project = await controller.create_project("Shop")
        await controller.record_transaction(_expense())

        updated = await controller.set_project_settled(project.id, True)

        assert updated.is_settled is True
        assert not controller.project_report().settlement.is_settled
        assert controller.project_report().transaction_count == 1


class TestTransactionMutations:
    """Tests for recording, editing and deleting through the controller."""

    @pytest.mark.asyncio
    async def test_record_requires_selection(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        with pytest.raises(NotFoundError):
            await controller.record_transaction(_expense())

    @pytest.mark.asyncio
    async def test_record_saves(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        project = await controller.create_project("Shop")

        t = await controller.record_transaction(_expense(amount="12.34"))

        stored = (await _stored_state(document_store)).find_project(project.id)
        assert stored.transactions == [t]
        assert stored.transactions[0].amount == Decimal("12.34")

    @pytest.mark.asyncio
    async def test_record_into_named_project(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        first = await controller.create_project("First")
        await controller.create_project("Second")

        await controller.record_transaction(_expense(), project_id=first.id)

        assert len(controller.get_project(first.id).transactions) == 1
        assert controller.transactions() == []

    @pytest.mark.asyncio
    async def test_invalid_record_is_rejected_without_save(self, document_store, make_controller):
        await _seed(document_store)
        audit_storage = InMemoryAuditStorage()
        controller = make_controller(document_store, audit_logger=AuditLogger(audit_storage))
        await controller.connect()
        await controller.create_project("Shop")
        version = document_store.version(WORKSPACE)

        with pytest.raises(ValidationError):
            await controller.record_transaction(_expense(paid_by="Carol"))

        assert controller.transactions() == []
        assert document_store.version(WORKSPACE) == version
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.TRANSACTION_REJECTED

    @pytest.mark.asyncio
    async def test_overlong_description_is_rejected(self, document_store, make_controller):
        await _seed(document_store)
        audit_storage = InMemoryAuditStorage()
        controller = make_controller(document_store, audit_logger=AuditLogger(audit_storage))
        await controller.connect()
        await controller.create_project("Shop")

        with pytest.raises(LedgerError) as exc_info:
            await controller.record_transaction(_expense(description="d" * 600))

        assert isinstance(exc_info.value, ValidationError)
        assert controller.transactions() == []
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.TRANSACTION_REJECTED

    @pytest.mark.asyncio
    async def test_edit_transaction(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        t = await controller.record_transaction(_expense())

        edited = await controller.edit_transaction(t.id, _expense(amount="80"))

        assert edited.id == t.id
        assert controller.transactions() == [edited]
        assert (await _stored_state(document_store)).projects[0].transactions == [edited]

    @pytest.mark.asyncio
    async def test_edit_and_delete_unknown_transaction(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        version = document_store.version(WORKSPACE)

        with pytest.raises(NotFoundError):
            await controller.edit_transaction(1, _expense())
        with pytest.raises(NotFoundError):
            await controller.delete_transaction(1)
        assert document_store.version(WORKSPACE) == version

    @pytest.mark.asyncio
    async def test_delete_transaction(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        t = await controller.record_transaction(_expense())

        assert await controller.delete_transaction(t.id) == t
        assert (await _stored_state(document_store)).projects[0].transactions == []

    @pytest.mark.asyncio
    async def test_transactions_filtered_and_sorted(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        expense = await controller.record_transaction(_expense())
        revenue = await controller.record_transaction(_revenue())

        assert controller.transactions() == [revenue, expense]
        assert controller.transactions(TransactionType.EXPENSE) == [expense]

    @pytest.mark.asyncio
    async def test_record_recommended_settlement(self, document_store, make_controller):
        """Recording the recommended payment settles the project."""
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        await controller.record_transaction(_expense())
        await controller.record_transaction(_revenue())

        settlement = await controller.record_recommended_settlement(on=date(2024, 3, 12))

        assert settlement.type == TransactionType.SETTLEMENT
        assert settlement.paid_by == "Partner B"
        assert settlement.received_by == "Partner A"
        assert settlement.amount == Decimal("100")
        assert controller.project_report().settlement.is_settled
        assert await controller.record_recommended_settlement() is None
        assert len(controller.transactions()) == 3

    @pytest.mark.asyncio
    async def test_all_projects_report(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("One")
        await controller.record_transaction(_expense(amount="30"))
        await controller.create_project("Two")
        await controller.record_transaction(_revenue(amount="50"))

        totals = controller.all_projects_report()

        assert totals.total_expenses == Decimal("30")
        assert totals.total_revenue == Decimal("50")

    @pytest.mark.asyncio
    async def test_validate_draft(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        assert controller.validate_draft(_expense()).is_valid
        assert not controller.validate_draft(_expense(amount="-1")).is_valid


class TestSettings:
    """Tests for renaming partners."""

    @pytest.mark.asyncio
    async def test_rename_partner_rewrites_history(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()
        await controller.create_project("Shop")
        await controller.record_transaction(_expense())
        await controller.record_transaction(_revenue())
        await controller.record_recommended_settlement()
        before = controller.project_report()

        rewritten = await controller.update_settings("Alice", "Partner B")

        assert rewritten == 2
        assert controller.settings == PartnerSettings(partner_a_name="Alice", partner_b_name="Partner B")
        names = {n for t in controller.transactions() for n in t.parties()}
        assert names == {"Alice", "Partner B"}
        after = controller.project_report()
        assert after.balances == before.balances
        assert after.net_flow == before.net_flow
        stored = await _stored_state(document_store)
        assert stored.settings.partner_a_name == "Alice"
        assert stored.projects[0].transactions[0].paid_by == "Alice"

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store)
        await controller.connect()

        with pytest.raises(ValidationError):
            await controller.update_settings("Sam", "Sam")
        with pytest.raises(ValidationError):
            await controller.update_settings("", "Sam")

        assert controller.settings == PartnerSettings()
        assert document_store.version(WORKSPACE) == 1


class TestSaveGuard:
    """Tests for the save-in-flight guard and failure handling."""

    @pytest.mark.asyncio
    async def test_save_while_saving_is_dropped(self, make_controller):
        store = GatedStore()
        await _seed(store)
        controller = make_controller(store)
        await controller.load()

        first = asyncio.create_task(controller.create_project("First"))
        await asyncio.sleep(0)
        assert controller.is_saving
        assert controller.sync_state == SyncState.SAVING

        # The mutation applies locally but its save is dropped
        await controller.create_project("Second")
        assert not await controller.save()
        assert [p.name for p in controller.list_projects()] == ["Second", "First"]

        store.gate.set()
        await first
        assert store.writes == 1
        assert [p.name for p in (await _stored_state(store)).projects] == ["First"]
        assert controller.sync_state == SyncState.SYNCED

        # The next save carries the change that was dropped
        assert await controller.save()
        assert {p.name for p in (await _stored_state(store)).projects} == {"First", "Second"}

    @pytest.mark.asyncio
    async def test_failed_save_keeps_local_change(self, make_controller, errors):
        store = FlakyStore()
        await _seed(store)
        audit_storage = InMemoryAuditStorage()
        controller = make_controller(store, audit_logger=AuditLogger(audit_storage))
        await controller.connect()
        await controller.create_project("Shop")

        store.fail_writes = True
        t = await controller.record_transaction(_expense())

        assert controller.sync_state == SyncState.SAVE_FAILED
        assert controller.transactions() == [t]
        assert isinstance(controller.last_error, SyncError)
        assert errors == [controller.last_error]
        assert (await _stored_state(store)).projects[0].transactions == []
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SAVE_FAILED

        store.fail_writes = False
        second = await controller.record_transaction(_revenue())

        assert controller.sync_state == SyncState.SYNCED
        assert controller.last_error is None
        assert (await _stored_state(store)).projects[0].transactions == [t, second]

    @pytest.mark.asyncio
    async def test_save_timeout(self, make_controller, errors):
        store = HangingStore()
        await _seed(store)
        controller = make_controller(
            store,
            settings=LedgerSettings(remote_timeout_seconds=0.05),
        )
        await controller.load()

        await controller.create_project("Shop")

        assert controller.sync_state == SyncState.SAVE_FAILED
        assert not controller.is_saving
        assert len(errors) == 1
        assert [p.name for p in controller.list_projects()] == ["Shop"]


class TestSnapshots:
    """Tests for remote snapshots (last write wins)."""

    @pytest.mark.asyncio
    async def test_other_client_sees_changes(self, document_store, make_controller):
        await _seed(document_store)
        alice = make_controller(document_store)
        bob = make_controller(document_store)
        await alice.connect()
        await bob.connect()

        project = await alice.create_project("Shop")
        await alice.record_transaction(_expense())

        assert bob.current_project_id == project.id
        assert len(bob.transactions()) == 1
        assert bob.project_report().settlement.settlement_amount == Decimal("50")

    @pytest.mark.asyncio
    async def test_snapshot_overwrites_local_state(self, document_store, make_controller):
        await _seed(document_store)
        alice = make_controller(document_store)
        bob = make_controller(document_store)
        await alice.connect()
        await bob.connect()
        await alice.create_project("Alice's project")

        # Bob saves a state that never saw Alice's project
        bob_state = WorkspaceState(projects=[Project(id=1, name="Bob's project")])
        await document_store.set_document(WORKSPACE, bob_state.to_document())

        assert [p.name for p in alice.list_projects()] == ["Bob's project"]
        assert alice.current_project_id is None

    @pytest.mark.asyncio
    async def test_deleted_selection_is_cleared(self, document_store, make_controller):
        await _seed(document_store)
        alice = make_controller(document_store)
        bob = make_controller(document_store)
        await alice.connect()
        await bob.connect()
        project = await alice.create_project("Shop")
        assert bob.current_project_id == project.id

        await bob.delete_project(project.id)

        assert alice.current_project is None
        assert alice.list_projects() == []

    @pytest.mark.asyncio
    async def test_snapshot_seeds_ids(self, document_store, make_controller):
        await _seed(document_store)
        controller = make_controller(document_store, id_generator=IdGenerator(clock=lambda: 1))
        await controller.connect()

        pushed = WorkspaceState(projects=[Project(id=9000, name="Pushed")])
        await document_store.set_document(WORKSPACE, pushed.to_document())

        project = await controller.create_project("Local")
        assert project.id == 9001

    def test_unreadable_snapshot_is_rejected(self, document_store, make_controller, errors):
        changes = []
        controller = make_controller(document_store, on_change=changes.append)

        assert not controller.apply_snapshot({"projects": "not a list"})

        assert controller.state == WorkspaceState()
        assert changes == []
        assert isinstance(errors[-1], SyncError)

    def test_snapshot_notifies_change(self, document_store, make_controller):
        changes = []
        controller = make_controller(document_store, on_change=changes.append)
        document = WorkspaceState(
            projects=[Project(id=3, name="Shop")],
            current_project_id=3,
        ).to_document()

        assert controller.apply_snapshot(document)

        assert controller.sync_state == SyncState.SYNCED
        assert changes[-1].current_project_id == 3
        assert controller.current_project.name == "Shop"

    def test_state_is_a_copy(self, document_store, make_controller):
        controller = make_controller(document_store)
        controller.apply_snapshot(WorkspaceState(projects=[Project(id=3, name="Shop")]).to_document())

        copy = controller.state
        copy.projects.clear()

        assert len(controller.list_projects()) == 1
