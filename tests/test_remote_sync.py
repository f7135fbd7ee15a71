"""
Tests for the ledger store against a remote-synced backend.

The remote backend is a fake (see conftest.py); snapshots are pushed
through its channel the way a subscription feed would push them.
"""

import asyncio
import threading

import pytest
from datetime import date
from decimal import Decimal

from smartfinance.audit import AuditLogger
from smartfinance.ledger import BackendUnavailableError, SnapshotChannel
from smartfinance.ledger.store import LedgerStore
from smartfinance.models import (
    AuditEventType,
    CollectionKind,
    CollectionSnapshot,
    WriteOp,
)
from smartfinance.services.storage import InMemoryAuditStorage


def account_record(id, balance, name="Main"):
    return {
        "id": id,
        "user_id": "user-1",
        "name": name,
        "institution": "Bank",
        "kind": "checking",
        "balance": balance,
    }


def transaction_record(id, on, amount="10", kind="expense", account_id="acc-1"):
    return {
        "id": id,
        "user_id": "user-1",
        "account_id": account_id,
        "category_id": "cat-1",
        "amount": amount,
        "kind": kind,
        "date": on,
        "note": "",
    }


async def open_remote_store(backend, audit_logger=None):
    store = LedgerStore(backend, user_id="user-1", audit_logger=audit_logger)
    await store.open()
    return store


async def settle():
    """Let the pump task run."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestOptimisticWrites:
    """Cache changes before the remote acknowledges them."""

    @pytest.mark.asyncio
    async def test_transaction_and_balance_committed_together(self, fake_remote):
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [account_record("acc-1", "100")],
        }
        store = await open_remote_store(fake_remote)
        transaction = await store.record_transaction(
            "acc-1", "cat-1", 30, "expense", date(2024, 3, 1)
        )

        assert len(fake_remote.commits) == 1
        put, patch = fake_remote.commits[0]
        assert (put.op, put.collection) == (WriteOp.PUT, CollectionKind.TRANSACTIONS)
        assert put.record_id == transaction.id
        assert put.fields["user_id"] == "user-1"
        assert (patch.op, patch.collection) == (WriteOp.PATCH, CollectionKind.ACCOUNTS)
        assert patch.fields == {"balance": "70"}
        await store.close()

    @pytest.mark.asyncio
    async def test_backend_assigns_ids(self, fake_remote):
        store = await open_remote_store(fake_remote)
        account = await store.create_account("Main", "Bank", "checking", 0)
        assert account.id == "acc-1"
        await store.close()

    @pytest.mark.asyncio
    async def test_failed_write_is_not_rolled_back(self, fake_remote):
        """The caller sees the error, the cache keeps the change."""
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [account_record("acc-1", "100")],
        }
        storage = InMemoryAuditStorage()
        store = await open_remote_store(
            fake_remote, AuditLogger(storage, user_id="user-1")
        )
        fake_remote.fail_commits = True

        with pytest.raises(BackendUnavailableError):
            await store.record_transaction(
                "acc-1", "cat-1", 30, "expense", date(2024, 3, 1)
            )

        view = store.current_view()
        assert len(view.transactions) == 1
        assert view.account("acc-1").balance == Decimal("70")

        events = await storage.get_recent_events()
        assert events[0].event_type == AuditEventType.BACKEND_WRITE_FAILED
        await store.close()

    @pytest.mark.asyncio
    async def test_delete_commits_account_and_transactions(self, fake_remote):
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [account_record("acc-1", "100")],
            CollectionKind.TRANSACTIONS: [
                transaction_record("t-1", "2024-03-01"),
                transaction_record("t-2", "2024-03-02"),
            ],
        }
        store = await open_remote_store(fake_remote)
        await store.delete_account("acc-1")

        writes = fake_remote.commits[0]
        assert all(w.op == WriteOp.DELETE for w in writes)
        assert [(w.collection, w.record_id) for w in writes] == [
            (CollectionKind.ACCOUNTS, "acc-1"),
            (CollectionKind.TRANSACTIONS, "t-2"),
            (CollectionKind.TRANSACTIONS, "t-1"),
        ]
        await store.close()


class TestSnapshots:
    """Pushed snapshots replace cached collections wholesale."""

    @pytest.mark.asyncio
    async def test_transactions_are_resorted(self, fake_remote):
        store = await open_remote_store(fake_remote)
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.TRANSACTIONS,
            records=(
                transaction_record("t-1", "2024-01-15"),
                transaction_record("t-2", "2024-03-01"),
                transaction_record("t-3", "2024-02-10"),
            ),
        ))

        view = store.current_view()
        assert [t.id for t in view.transactions] == ["t-2", "t-3", "t-1"]
        await store.close()

    @pytest.mark.asyncio
    async def test_last_snapshot_wins(self, fake_remote):
        """A snapshot without the optimistic entry drops it from the view."""
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [account_record("acc-1", "100")],
        }
        store = await open_remote_store(fake_remote)
        await store.record_transaction("acc-1", "cat-1", 30, "expense", date(2024, 3, 1))
        assert store.current_view().account("acc-1").balance == Decimal("70")

        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=(account_record("acc-1", "100"),),
        ))
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.TRANSACTIONS,
            records=(),
        ))

        view = store.current_view()
        assert view.account("acc-1").balance == Decimal("100")
        assert view.transactions == ()
        await store.close()

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self, fake_remote):
        store = await open_remote_store(fake_remote)
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.TRANSACTIONS,
            records=(
                transaction_record("t-1", "2024-03-01"),
                transaction_record("t-2", "2024-03-02", amount="-5"),
                transaction_record("t-3", "not a date"),
            ),
        ))
        assert [t.id for t in store.current_view().transactions] == ["t-1"]
        await store.close()

    @pytest.mark.asyncio
    async def test_pump_applies_snapshots_in_background(self, fake_remote):
        store = await open_remote_store(fake_remote)
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=(account_record("acc-9", "5"),),
        ))
        await settle()

        assert store.process_pending() == 0
        assert [a.id for a in store.current_view().accounts] == ["acc-9"]
        await store.close()

    @pytest.mark.asyncio
    async def test_publish_from_another_thread(self, fake_remote):
        store = await open_remote_store(fake_remote)
        snapshot = CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=(account_record("acc-7", "42"),),
        )
        publisher = threading.Thread(target=fake_remote.channel.publish, args=(snapshot,))
        publisher.start()
        publisher.join()
        await asyncio.sleep(0.05)

        assert store.current_view().account("acc-7").balance == Decimal("42")
        await store.close()

    @pytest.mark.asyncio
    async def test_mutation_sees_pending_snapshot(self, fake_remote):
        """An account that arrived by snapshot can be used right away."""
        store = await open_remote_store(fake_remote)
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=(account_record("acc-5", "10"),),
        ))
        await store.record_transaction("acc-5", "cat-3", 5, "income", date(2024, 3, 1))
        assert store.current_view().account("acc-5").balance == Decimal("15")
        await store.close()


class TestLifecycle:
    """Opening and closing the store."""

    @pytest.mark.asyncio
    async def test_open_failure_propagates(self, fake_remote):
        fake_remote.fail_open = True
        store = LedgerStore(fake_remote, user_id="user-1")
        with pytest.raises(BackendUnavailableError):
            await store.open()
        assert store.is_open is False

    @pytest.mark.asyncio
    async def test_close_stops_the_feed(self, fake_remote):
        store = await open_remote_store(fake_remote)
        assert fake_remote.user_id == "user-1"
        await store.close()

        assert fake_remote.closed is True
        assert store.is_open is False
        fake_remote.channel.publish(CollectionSnapshot(
            collection=CollectionKind.ACCOUNTS,
            records=(account_record("acc-1", "1"),),
        ))
        assert store.current_view().accounts == ()


class TestSnapshotChannel:
    """Tests for the channel on its own."""

    @pytest.mark.asyncio
    async def test_drain_keeps_close_marker(self):
        channel = SnapshotChannel()
        channel.bind(asyncio.get_running_loop())
        snapshot = CollectionSnapshot(collection=CollectionKind.ACCOUNTS)
        channel.publish(snapshot)
        channel.close()

        assert channel.drain() == [snapshot]
        assert await channel.receive() is None
        assert channel.closed is True

    @pytest.mark.asyncio
    async def test_publish_after_close_is_ignored(self):
        channel = SnapshotChannel()
        channel.bind(asyncio.get_running_loop())
        channel.close()
        channel.publish(CollectionSnapshot(collection=CollectionKind.ACCOUNTS))
        assert channel.drain() == []


class TestOverlappingMutations:
    """Mutations started together still reach the backend in call order."""

    @pytest.mark.asyncio
    async def test_balance_patches_land_in_call_order(self, fake_remote):
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [account_record("acc-1", "100")],
        }
        fake_remote.commit_delays = [0.05, 0]
        store = await open_remote_store(fake_remote)

        await asyncio.gather(
            store.record_transaction("acc-1", "cat-1", 10, "expense", date(2024, 3, 1)),
            store.record_transaction("acc-1", "cat-1", 20, "expense", date(2024, 3, 2)),
        )

        patches = [writes[1].fields["balance"] for writes in fake_remote.commits]
        assert patches == ["90", "70"]
        view = store.current_view()
        assert view.account("acc-1").balance == Decimal("70")
        assert len(view.transactions) == 2
        await store.close()

    @pytest.mark.asyncio
    async def test_deletes_land_in_call_order(self, fake_remote):
        fake_remote.initial = {
            CollectionKind.ACCOUNTS: [
                account_record("acc-1", "1"),
                account_record("acc-2", "2", name="Second"),
            ],
        }
        fake_remote.commit_delays = [0.05, 0]
        store = await open_remote_store(fake_remote)

        await asyncio.gather(store.delete_account("acc-1"), store.delete_account("acc-2"))

        assert [writes[0].record_id for writes in fake_remote.commits] == ["acc-1", "acc-2"]
        assert store.current_view().accounts == ()
        await store.close()
