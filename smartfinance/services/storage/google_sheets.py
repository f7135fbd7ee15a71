"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote, multi-client ledger store:
1. Every device signed in as the same user sees the same rows
2. No database setup required
3. Users can inspect their ledger directly in Sheets
4. batch_update applies a list of requests atomically

TRADEOFFS:
- Sheets has no push API, so a watcher thread per collection re-reads the
  sheet and publishes a full snapshot whenever the user's rows change.
  The ledger store itself never polls, it only reacts to snapshots.
- All cells are stored as RAW strings; pydantic parses them back.
- Limited query capabilities (we filter by user in Python)
"""

import asyncio
import json
import threading
from datetime import datetime
from functools import partial
from typing import Any, Callable, Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smartfinance.config import GoogleSheetsSettings, get_settings
from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.ledger.errors import BackendUnavailableError
from smartfinance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from smartfinance.models.sync import (
    CollectionKind,
    CollectionSnapshot,
    LedgerWrite,
    WriteOp,
)
from smartfinance.services.storage.interface import (
    AuditStorageInterface,
    LedgerBackend,
)


logger = structlog.get_logger(__name__)


# Column mappings per collection
ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "institution",
    "kind",
    "balance",
]

TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "account_id",
    "category_id",
    "amount",
    "kind",
    "date",
    "note",
]

COLUMNS = {
    CollectionKind.ACCOUNTS: ACCOUNT_COLUMNS,
    CollectionKind.TRANSACTIONS: TRANSACTION_COLUMNS,
}

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(gspread.exceptions.APIError),
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
            except FileNotFoundError as e:
                raise BackendUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise BackendUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: CollectionKind) -> gspread.Worksheet:
        """Worksheet backing one ledger collection."""
        if collection == CollectionKind.ACCOUNTS:
            title = self._settings.accounts_sheet_name
        else:
            title = self._settings.transactions_sheet_name
        return self.get_worksheet(title, COLUMNS[collection])

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS)


def _cell(value: Any) -> dict:
    return {"userEnteredValue": {"stringValue": "" if value is None else str(value)}}


class SheetWatcher(threading.Thread):
    """
    Subscription feed for one collection.

    Re-reads the sheet every ``interval`` seconds (or right away after
    poke()) and publishes a snapshot when the user's rows have changed
    since the last delivery.
    """

    def __init__(
        self,
        collection: CollectionKind,
        fetch: Callable[[], tuple[dict[str, Any], ...]],
        publish: Callable[[CollectionSnapshot], None],
        interval: float,
        initial: tuple[dict[str, Any], ...] = (),
    ):
        super().__init__(name=f"sheet-watcher-{collection.value}", daemon=True)
        self.collection = collection
        self._fetch = fetch
        self._publish = publish
        self._interval = interval
        self._last = initial
        self._wake = threading.Event()
        self._stopping = threading.Event()

    def poke(self) -> None:
        """Check for changes now instead of waiting for the interval."""
        self._wake.set()

    def stop(self) -> None:
        self._stopping.set()
        self._wake.set()

    def run(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait(self._interval)
            self._wake.clear()
            if self._stopping.is_set():
                break
            self.refresh()

    def refresh(self) -> bool:
        """Fetch once and publish if anything changed. Returns True if published."""
        try:
            records = self._fetch()
        except Exception as e:
            # Keep the feed alive; the next round may succeed
            logger.warning(
                "sheet_watch_failed",
                collection=self.collection.value,
                error=str(e),
            )
            return False

        if records == self._last:
            return False
        self._last = records
        self._publish(CollectionSnapshot(collection=self.collection, records=records))
        return True


class GoogleSheetsLedgerBackend(LedgerBackend):
    """
    Remote-synced ledger backend on Google Sheets.

    Each record is one row, tagged with the owning user_id.
    Row ids are generated here at write time.
    """

    name = "google_sheets"

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._user_id: Optional[str] = None
        self._watchers: dict[CollectionKind, SheetWatcher] = {}
        self._write_lock = threading.Lock()

    def new_id(self, collection: CollectionKind) -> str:
        return uuid4().hex

    async def open(
        self,
        user_id: Optional[str],
        channel: SnapshotChannel,
    ) -> list[CollectionSnapshot]:
        """Initial handshake: load both collections, then start watching them."""
        self._user_id = user_id
        snapshots = []
        for collection in CollectionKind:
            try:
                records = await asyncio.to_thread(self._fetch_records, collection)
            except BackendUnavailableError:
                raise
            except Exception as e:
                raise BackendUnavailableError(
                    f"Failed to load {collection.value}: {e}"
                ) from e
            snapshots.append(CollectionSnapshot(collection=collection, records=records))

        for snapshot in snapshots:
            watcher = SheetWatcher(
                collection=snapshot.collection,
                fetch=partial(self._fetch_records, snapshot.collection),
                publish=channel.publish,
                interval=self._client.settings.poll_interval_seconds,
                initial=snapshot.records,
            )
            self._watchers[snapshot.collection] = watcher
            watcher.start()

        logger.info("sheets_subscribed", user_id=user_id)
        return snapshots

    async def commit(self, writes: list[LedgerWrite]) -> None:
        """Send the whole batch as one atomic batch_update."""
        if not writes:
            return
        try:
            await asyncio.to_thread(self._commit_sync, writes)
        except BackendUnavailableError:
            raise
        except Exception as e:
            raise BackendUnavailableError(
                f"Failed to commit {len(writes)} writes: {e}"
            ) from e

        # Our own write changes the sheet; report it without waiting
        for collection in {w.collection for w in writes}:
            watcher = self._watchers.get(collection)
            if watcher is not None:
                watcher.poke()

    async def close(self) -> None:
        watchers = list(self._watchers.values())
        self._watchers.clear()
        for watcher in watchers:
            watcher.stop()
        for watcher in watchers:
            if watcher.is_alive():
                await asyncio.to_thread(watcher.join, 5.0)
        if watchers:
            logger.info("sheets_unsubscribed", user_id=self._user_id)

    def _fetch_records(self, collection: CollectionKind) -> tuple[dict[str, Any], ...]:
        """All rows of one collection belonging to the current user."""
        columns = COLUMNS[collection]
        sheet = self._client.get_collection_sheet(collection)
        records = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:  # Skip empty rows
                continue
            padded = list(row) + [""] * (len(columns) - len(row))
            record = dict(zip(columns, padded))
            if record["user_id"] != (self._user_id or ""):
                continue
            records.append(record)
        return tuple(records)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(gspread.exceptions.APIError),
        reraise=True,
    )
    def _commit_sync(self, writes: list[LedgerWrite]) -> None:
        # Row indexes hold only until the next delete lands
        with self._write_lock:
            spreadsheet = self._client.get_spreadsheet()
            requests, targets = self._build_requests(writes)
            self._verify_targets(targets)
            spreadsheet.batch_update({"requests": requests})

    def _verify_targets(self, targets: list[tuple[CollectionKind, int, str]]) -> None:
        """
        Re-read the id cell of every targeted row just before sending.

        Fails if another client deleted rows after the row map was built.
        """
        current: dict[CollectionKind, list[list[str]]] = {}
        for collection, row_index, record_id in targets:
            if collection not in current:
                sheet = self._client.get_collection_sheet(collection)
                current[collection] = sheet.get_all_values()
            rows = current[collection]
            found = rows[row_index][0] if row_index < len(rows) and rows[row_index] else ""
            if found != record_id:
                raise BackendUnavailableError(
                    f"Remote {collection.value} rows moved, {record_id} not at row {row_index}"
                )

    def _build_requests(
        self,
        writes: list[LedgerWrite],
    ) -> tuple[list[dict], list[tuple[CollectionKind, int, str]]]:
        """
        Translate writes into Sheets API requests.

        Also returns the (collection, row index, record id) of every row
        the requests address, for _verify_targets.

        Order matters: cell updates use the row numbers as they are now,
        deletes go bottom-up so earlier deletes don't shift later ones,
        and appends come last.
        """
        updates: list[dict] = []
        deletes: list[tuple[int, int]] = []
        appends: list[dict] = []
        targets: list[tuple[CollectionKind, int, str]] = []
        row_maps: dict[CollectionKind, dict[str, int]] = {}

        for write in writes:
            columns = COLUMNS[write.collection]
            sheet = self._client.get_collection_sheet(write.collection)

            if write.op == WriteOp.PUT:
                values = [_cell(write.fields.get(column)) for column in columns]
                appends.append({
                    "appendCells": {
                        "sheetId": sheet.id,
                        "rows": [{"values": values}],
                        "fields": "userEnteredValue",
                    }
                })
                continue

            if write.collection not in row_maps:
                row_maps[write.collection] = {
                    row[0]: index
                    for index, row in enumerate(sheet.get_all_values())
                    if index > 0 and row and row[0]
                }
            row_index = row_maps[write.collection].get(write.record_id)
            if row_index is None:
                raise BackendUnavailableError(
                    f"Remote {write.collection.value} row missing: {write.record_id}"
                )
            targets.append((write.collection, row_index, write.record_id))

            if write.op == WriteOp.DELETE:
                deletes.append((sheet.id, row_index))
                continue

            for field, value in write.fields.items():
                column_index = columns.index(field)
                updates.append({
                    "updateCells": {
                        "range": {
                            "sheetId": sheet.id,
                            "startRowIndex": row_index,
                            "endRowIndex": row_index + 1,
                            "startColumnIndex": column_index,
                            "endColumnIndex": column_index + 1,
                        },
                        "rows": [{"values": [_cell(value)]}],
                        "fields": "userEnteredValue",
                    }
                })

        deletes.sort(key=lambda d: d[1], reverse=True)
        delete_requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_index,
                        "endIndex": row_index + 1,
                    }
                }
            }
            for sheet_id, row_index in deletes
        ]
        return updates + delete_requests + appends, targets


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

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
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            user_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            await asyncio.to_thread(
                sheet.append_row, event.to_sheets_row(), value_input_option="RAW"
            )
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning(
                "audit_append_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            all_rows = (await asyncio.to_thread(sheet.get_all_values))[1:]
        except Exception as e:
            raise BackendUnavailableError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue  # Skip malformed rows

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
