"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the shared remote backend because:
1. Both partners can inspect the raw data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No push channel: subscriptions poll the workspace row's write id
- No transactions: a write replaces the document cells of one row, which is
  exactly the last-write-wins contract the sync controller expects
- Several writes between two polls reach subscribers as one snapshot

Each workspace is one row. The workspace document is stored as JSON in a
single cell; the password hash lives in its own column, outside the document.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import gspread
import gspread.utils
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from partner_ledger.config import GoogleSheetsSettings, get_settings
from partner_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
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


# Column mappings for Workspaces sheet. The columns a save rewrites are
# contiguous so one range update replaces them together.
WORKSPACE_COLUMNS = [
    "workspace_id",
    "password_hash",
    "created_at",
    "document_json",
    "version",
    "last_updated",
    "write_id",
]

_DOCUMENT_IDX = WORKSPACE_COLUMNS.index("document_json")
_VERSION_IDX = WORKSPACE_COLUMNS.index("version")
_LAST_UPDATED_IDX = WORKSPACE_COLUMNS.index("last_updated")
_WRITE_ID_IDX = WORKSPACE_COLUMNS.index("write_id")

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "workspace_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_workspaces_sheet(self) -> gspread.Worksheet:
        """Get or create the Workspaces worksheet."""
        return self._get_or_create_sheet(
            self._settings.workspaces_sheet_name,
            WORKSPACE_COLUMNS,
            rows=100,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the workspace document store.

    gspread is blocking; every sheet call runs in a worker thread so the
    event loop keeps serving timeouts and other subscriptions.

    Subscriptions are asyncio tasks polling the workspace row. Every save
    stamps the row with a fresh write id; a snapshot is delivered whenever
    the id differs from the last one seen, so two saves that raced to the
    same version number are still both observed.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else get_settings().store.poll_interval_seconds
        )
        self._logger = structlog.get_logger(__name__)

    def _find_row(self, sheet: gspread.Worksheet, workspace_id: str) -> tuple[int, list]:
        """Return (1-based row index, row values) of a workspace."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == workspace_id:
                return idx, row
        raise DocumentNotFoundError(f"Workspace not found: {workspace_id}")

    @staticmethod
    def _cell(row: list, index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    def _row_to_document(self, row: list) -> dict:
        document = json.loads(self._cell(row, _DOCUMENT_IDX, "{}"))
        document[VERSION_KEY] = int(self._cell(row, _VERSION_IDX, "0"))
        document[LAST_UPDATED_KEY] = self._cell(row, _LAST_UPDATED_IDX) or None
        return document

    # -------------------------------------------------------------------------
    # Blocking gspread work, run through asyncio.to_thread
    # -------------------------------------------------------------------------

    def _append_workspace(self, row: list[str]) -> None:
        sheet = self._client.get_workspaces_sheet()
        try:
            self._find_row(sheet, row[0])
        except DocumentNotFoundError:
            pass
        else:
            raise DuplicateError(f"Workspace already exists: {row[0]}")
        sheet.append_row(row, value_input_option="RAW")

    def _read_row(self, workspace_id: str) -> list:
        sheet = self._client.get_workspaces_sheet()
        _, row = self._find_row(sheet, workspace_id)
        return row

    def _write_document(self, workspace_id: str, payload: str, now: datetime) -> None:
        sheet = self._client.get_workspaces_sheet()
        idx, row = self._find_row(sheet, workspace_id)
        version = int(self._cell(row, _VERSION_IDX, "0")) + 1
        first = gspread.utils.rowcol_to_a1(idx, _DOCUMENT_IDX + 1)
        last = gspread.utils.rowcol_to_a1(idx, _WRITE_ID_IDX + 1)
        sheet.update(
            range_name=f"{first}:{last}",
            values=[[payload, str(version), now.isoformat(), uuid4().hex]],
            value_input_option="RAW",
        )

    # -------------------------------------------------------------------------
    # DocumentStoreInterface
    # -------------------------------------------------------------------------

    async def create_document(
        self,
        workspace_id: str,
        document: dict,
        password_hash: str,
    ) -> datetime:
        now = datetime.now(timezone.utc)
        row = [
            workspace_id,
            password_hash,
            now.isoformat(),
            json.dumps(document),
            "1",
            now.isoformat(),
            uuid4().hex,
        ]
        try:
            await asyncio.to_thread(self._append_workspace, row)
            return now
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create workspace: {e}")

    async def _read(self, workspace_id: str) -> tuple[dict, str]:
        """Fetch a workspace as (document, write id)."""
        try:
            row = await asyncio.to_thread(self._read_row, workspace_id)
            return self._row_to_document(row), self._cell(row, _WRITE_ID_IDX)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get workspace: {e}")

    async def get_document(self, workspace_id: str) -> dict:
        document, _ = await self._read(workspace_id)
        return document

    async def set_document(self, workspace_id: str, document: dict) -> datetime:
        now = datetime.now(timezone.utc)
        payload = json.dumps({
            k: v for k, v in document.items()
            if k not in (LAST_UPDATED_KEY, VERSION_KEY)
        })
        try:
            await asyncio.to_thread(self._write_document, workspace_id, payload, now)
            return now
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save workspace: {e}")

    async def get_password_hash(self, workspace_id: str) -> str:
        try:
            row = await asyncio.to_thread(self._read_row, workspace_id)
            return self._cell(row, WORKSPACE_COLUMNS.index("password_hash"))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read workspace credentials: {e}")

    async def _poll(self, workspace_id: str, on_change: SnapshotCallback) -> None:
        last_seen = None
        while True:
            try:
                document, write_id = await self._read(workspace_id)
            except StorageError as e:
                self._logger.warning(
                    "workspace_poll_failed",
                    workspace_id=workspace_id,
                    error=str(e),
                )
            else:
                seen = (document.get(VERSION_KEY), write_id)
                if seen != last_seen:
                    last_seen = seen
                    try:
                        on_change(document)
                    except Exception as e:
                        self._logger.error(
                            "snapshot_callback_failed",
                            workspace_id=workspace_id,
                            error=str(e),
                        )
            await asyncio.sleep(self._poll_interval)

    def subscribe(self, workspace_id: str, on_change: SnapshotCallback) -> Unsubscribe:
        """Start polling. Must be called from inside a running event loop."""
        task = asyncio.get_running_loop().create_task(
            self._poll(workspace_id, on_change),
            name=f"poll-{workspace_id}",
        )

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._logger = structlog.get_logger(__name__)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            workspace_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _append(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    def _read_all(self) -> list[list[str]]:
        return self._client.get_audit_sheet().get_all_values()[1:]

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await asyncio.to_thread(self._append, event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            self._logger.warning("audit_append_failed", error=str(e))
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            all_rows = await asyncio.to_thread(self._read_all)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue  # Skip malformed rows

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
