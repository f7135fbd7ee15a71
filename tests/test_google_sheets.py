"""
Tests for the Google Sheets backend.

The gspread client is replaced with in-memory worksheets; we check the
rows we read and the batch_update requests we send.
"""

import asyncio
import time
from datetime import timedelta

import pytest

from smartfinance.config import GoogleSheetsSettings
from smartfinance.ledger import BackendUnavailableError, SnapshotChannel
from smartfinance.models import (
    AuditEventBuilder,
    AuditEventType,
    CollectionKind,
    CollectionSnapshot,
    LedgerWrite,
)
from smartfinance.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerBackend,
    SheetWatcher,
)
from smartfinance.services.storage.google_sheets import (
    ACCOUNT_COLUMNS,
    AUDIT_COLUMNS,
    TRANSACTION_COLUMNS,
)


class FakeWorksheet:
    def __init__(self, sheet_id, header, rows=()):
        self.id = sheet_id
        self.rows = [list(header)] + [list(r) for r in rows]

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))


class SlowWorksheet(FakeWorksheet):
    """Every read takes a while, so concurrent commits overlap."""

    def get_all_values(self):
        time.sleep(0.05)
        return super().get_all_values()


class ShiftingWorksheet(FakeWorksheet):
    """Another client deletes the first data row right after our first read."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    def get_all_values(self):
        values = super().get_all_values()
        self.reads += 1
        if self.reads == 1:
            del self.rows[1]
        return values


class FakeSpreadsheet:
    def __init__(self):
        self.batches = []
        self.error = None

    def batch_update(self, body):
        if self.error is not None:
            raise self.error
        self.batches.append(body["requests"])


class ApplyingSpreadsheet(FakeSpreadsheet):
    """Applies row deletes to the worksheets, like the real API."""

    def __init__(self, sheets):
        super().__init__()
        self.sheets_by_id = {sheet.id: sheet for sheet in sheets}

    def batch_update(self, body):
        super().batch_update(body)
        for request in body["requests"]:
            if "deleteDimension" in request:
                span = request["deleteDimension"]["range"]
                del self.sheets_by_id[span["sheetId"]].rows[span["startIndex"]]


class FakeSheetsClient:
    def __init__(self, accounts=(), transactions=()):
        self.settings = GoogleSheetsSettings(
            credentials_path=None,
            spreadsheet_id="sheet-id",
            poll_interval_seconds=60,
        )
        self.spreadsheet = FakeSpreadsheet()
        self.sheets = {
            CollectionKind.ACCOUNTS: FakeWorksheet(1, ACCOUNT_COLUMNS, accounts),
            CollectionKind.TRANSACTIONS: FakeWorksheet(2, TRANSACTION_COLUMNS, transactions),
        }
        self.audit_sheet = FakeWorksheet(3, AUDIT_COLUMNS)
        self.unreachable = False

    def get_spreadsheet(self):
        return self.spreadsheet

    def get_collection_sheet(self, collection):
        if self.unreachable:
            raise ConnectionError("network down")
        return self.sheets[collection]

    def get_audit_sheet(self):
        return self.audit_sheet


ACCOUNT_ROWS = [
    ["acc-1", "user-1", "Main", "Bank", "checking", "100"],
    ["acc-2", "user-2", "Other", "Bank", "savings", "5"],
    ["", "", "", "", "", ""],
    ["acc-3", "user-1", "Card", "Bank", "credit", "-20"],
]

TRANSACTION_ROWS = [
    ["t-1", "user-1", "acc-1", "cat-1", "10", "expense", "2024-03-01", ""],
    ["t-2", "user-1", "acc-1", "cat-1", "15", "expense", "2024-03-02"],
    ["t-3", "user-1", "acc-3", "cat-4", "20", "expense", "2024-03-03", "Shoes"],
]


@pytest.fixture
def client():
    return FakeSheetsClient(ACCOUNT_ROWS, TRANSACTION_ROWS)


class TestOpen:
    """Initial load of both collections."""

    @pytest.mark.asyncio
    async def test_only_the_users_rows_are_loaded(self, client):
        backend = GoogleSheetsLedgerBackend(client)
        channel = SnapshotChannel()
        channel.bind(asyncio.get_running_loop())

        snapshots = await backend.open("user-1", channel)
        await backend.close()

        by_kind = {s.collection: s.records for s in snapshots}
        assert [r["id"] for r in by_kind[CollectionKind.ACCOUNTS]] == ["acc-1", "acc-3"]
        assert [r["id"] for r in by_kind[CollectionKind.TRANSACTIONS]] == ["t-1", "t-2", "t-3"]

    @pytest.mark.asyncio
    async def test_short_rows_are_padded(self, client):
        backend = GoogleSheetsLedgerBackend(client)
        channel = SnapshotChannel()
        channel.bind(asyncio.get_running_loop())

        snapshots = await backend.open("user-1", channel)
        await backend.close()

        t2 = snapshots[1].records[1]
        assert t2["note"] == ""

    @pytest.mark.asyncio
    async def test_unreachable_sheet(self, client):
        client.unreachable = True
        backend = GoogleSheetsLedgerBackend(client)
        channel = SnapshotChannel()
        channel.bind(asyncio.get_running_loop())

        with pytest.raises(BackendUnavailableError):
            await backend.open("user-1", channel)


class TestCommit:
    """Writes become one atomic batch_update."""

    @pytest.mark.asyncio
    async def test_request_order(self, client):
        """Updates first, deletes bottom-up, appends last."""
        backend = GoogleSheetsLedgerBackend(client)
        await backend.commit([
            LedgerWrite.delete(CollectionKind.TRANSACTIONS, "t-1"),
            LedgerWrite.put(CollectionKind.TRANSACTIONS, {
                "id": "t-9",
                "user_id": "user-1",
                "account_id": "acc-1",
                "category_id": "cat-1",
                "amount": "5",
                "kind": "expense",
                "date": "2024-03-04",
                "note": "",
            }),
            LedgerWrite.delete(CollectionKind.TRANSACTIONS, "t-3"),
            LedgerWrite.patch(CollectionKind.ACCOUNTS, "acc-1", {"balance": "95"}),
        ])

        assert len(client.spreadsheet.batches) == 1
        requests = client.spreadsheet.batches[0]
        assert [next(iter(r)) for r in requests] == [
            "updateCells",
            "deleteDimension",
            "deleteDimension",
            "appendCells",
        ]

        update = requests[0]["updateCells"]
        assert update["range"]["sheetId"] == 1
        assert update["range"]["startRowIndex"] == 1
        assert update["range"]["startColumnIndex"] == ACCOUNT_COLUMNS.index("balance")
        assert update["rows"][0]["values"][0]["userEnteredValue"]["stringValue"] == "95"

        assert [r["deleteDimension"]["range"]["startIndex"] for r in requests[1:3]] == [3, 1]

        appended = requests[3]["appendCells"]["rows"][0]["values"]
        assert [v["userEnteredValue"]["stringValue"] for v in appended][:2] == ["t-9", "user-1"]

    @pytest.mark.asyncio
    async def test_missing_row(self, client):
        backend = GoogleSheetsLedgerBackend(client)
        with pytest.raises(BackendUnavailableError):
            await backend.commit([LedgerWrite.delete(CollectionKind.ACCOUNTS, "acc-404")])
        assert client.spreadsheet.batches == []

    @pytest.mark.asyncio
    async def test_api_failure_is_wrapped(self, client):
        client.spreadsheet.error = RuntimeError("quota exceeded")
        backend = GoogleSheetsLedgerBackend(client)
        with pytest.raises(BackendUnavailableError, match="quota exceeded"):
            await backend.commit([LedgerWrite.delete(CollectionKind.ACCOUNTS, "acc-1")])

    @pytest.mark.asyncio
    async def test_empty_commit_sends_nothing(self, client):
        backend = GoogleSheetsLedgerBackend(client)
        await backend.commit([])
        assert client.spreadsheet.batches == []


class TestConcurrentCommits:
    """Row indexes stay valid while other deletes land."""

    @pytest.mark.asyncio
    async def test_overlapping_deletes_hit_the_right_rows(self):
        client = FakeSheetsClient()
        accounts = SlowWorksheet(1, ACCOUNT_COLUMNS, [
            ["acc-1", "user-1", "Main", "Bank", "checking", "1"],
            ["acc-2", "user-1", "Spare", "Bank", "savings", "2"],
            ["acc-x", "user-2", "Theirs", "Bank", "checking", "3"],
        ])
        client.sheets[CollectionKind.ACCOUNTS] = accounts
        client.spreadsheet = ApplyingSpreadsheet(client.sheets.values())
        backend = GoogleSheetsLedgerBackend(client)

        await asyncio.gather(
            backend.commit([LedgerWrite.delete(CollectionKind.ACCOUNTS, "acc-1")]),
            backend.commit([LedgerWrite.delete(CollectionKind.ACCOUNTS, "acc-2")]),
        )

        assert [row[0] for row in accounts.rows[1:]] == ["acc-x"]
        assert len(client.spreadsheet.batches) == 2

    @pytest.mark.asyncio
    async def test_rows_moved_by_another_client(self, client):
        """Nothing is sent if the targeted row is no longer where we found it."""
        client.sheets[CollectionKind.ACCOUNTS] = ShiftingWorksheet(1, ACCOUNT_COLUMNS, ACCOUNT_ROWS)
        backend = GoogleSheetsLedgerBackend(client)

        with pytest.raises(BackendUnavailableError, match="rows moved"):
            await backend.commit([LedgerWrite.delete(CollectionKind.ACCOUNTS, "acc-3")])
        assert client.spreadsheet.batches == []


class TestSheetWatcher:
    """Change detection in the subscription feed."""

    def test_publishes_only_on_change(self):
        published = []
        rows = [({"id": "acc-1"},)]
        watcher = SheetWatcher(
            collection=CollectionKind.ACCOUNTS,
            fetch=lambda: rows[-1],
            publish=published.append,
            interval=60,
            initial=({"id": "acc-1"},),
        )

        assert watcher.refresh() is False
        rows.append(({"id": "acc-1"}, {"id": "acc-2"}))
        assert watcher.refresh() is True
        assert watcher.refresh() is False

        assert published == [CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=({"id": "acc-1"}, {"id": "acc-2"}),
        )]

    def test_fetch_failure_keeps_feed_alive(self):
        def fetch():
            raise ConnectionError("timeout")

        published = []
        watcher = SheetWatcher(
            collection=CollectionKind.TRANSACTIONS,
            fetch=fetch,
            publish=published.append,
            interval=60,
        )
        assert watcher.refresh() is False
        assert published == []

    def test_stop_ends_the_thread(self):
        watcher = SheetWatcher(
            collection=CollectionKind.ACCOUNTS,
            fetch=lambda: (),
            publish=lambda snapshot: None,
            interval=60,
        )
        watcher.start()
        watcher.stop()
        watcher.join(5)
        assert not watcher.is_alive()


class TestAuditStorage:
    """Audit rows on the AuditLog sheet."""

    @pytest.mark.asyncio
    async def test_append_and_read_back(self, client):
        storage = GoogleSheetsAuditStorage(client)
        first = AuditEventBuilder.session_started("live", "user-1", "google_sheets")
        second = AuditEventBuilder.backend_write_failed("accounts", "boom", "user-1")
        second = second.model_copy(
            update={"timestamp": first.timestamp + timedelta(seconds=1)}
        )

        assert await storage.append_event(first) is True
        assert await storage.append_event(second) is True
        events = await storage.get_recent_events()

        assert [e.event_type for e in events] == [
            AuditEventType.BACKEND_WRITE_FAILED,
            AuditEventType.SESSION_STARTED,
        ]
        assert events[1].details == {"mode": "live", "backend": "google_sheets"}
        assert events[0].error_message == "boom"

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self, client):
        def broken():
            raise ConnectionError("network down")

        client.get_audit_sheet = broken
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.session_ended("live", "user-1")
        assert await storage.append_event(event) is False
