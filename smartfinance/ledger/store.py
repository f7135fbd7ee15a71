"""
Ledger Store

The single authoritative in-memory view of one user's accounts and
transactions, and the only component allowed to change them.

INVARIANT (after every committed mutation):
    account.balance == opening balance + sum(income) - sum(expense)
over the account's current transactions. The opening balance is folded
into ``balance`` at creation, so the invariant is kept incrementally:
recording a transaction applies its signed amount to the account in the
same step that adds the transaction.

BACKENDS:
The store holds one LedgerBackend for the whole session and never asks
which kind it is. Every mutation:
1. validates (nothing changes if this fails)
2. updates the cache in one step, before any await
3. commits the matching writes to the backend as one atomic batch

Mutations run one at a time. Each holds the write lock from step 1
through step 3, so overlapping calls commit in call order and a later
balance patch is never overwritten by an earlier one.

Against the local backend step 3 cannot fail for a validated request.
Against a remote backend the cache change is OPTIMISTIC: if the commit
fails the error reaches the caller, but the cache is NOT rolled back.
The next snapshot from the backend's feed replaces the whole collection
and settles the matter (last snapshot wins).
"""

import asyncio
from datetime import date
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError as SchemaError

from smartfinance.audit import AuditLogger
from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.ledger.errors import BackendUnavailableError
from smartfinance.models.catalog import DEFAULT_CATEGORIES
from smartfinance.models.ledger import (
    Account,
    Category,
    LedgerSnapshot,
    Transaction,
)
from smartfinance.models.sync import (
    CollectionKind,
    CollectionSnapshot,
    LedgerWrite,
)
from smartfinance.services.storage import LedgerBackend
from smartfinance.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class LedgerStore:
    """
    Owns the cached ledger collections for one session.

    Usage:
        store = LedgerStore(LocalLedgerBackend(), user_id="demo-user")
        await store.open()
        account = await store.create_account("Main", "Bank", "checking", 1000)
        await store.record_transaction(account.id, "cat-1", 150, "expense", date.today())
        view = store.current_view()
        await store.close()
    """

    def __init__(
        self,
        backend: LedgerBackend,
        categories: Iterable[Category] = DEFAULT_CATEGORIES,
        user_id: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._categories = tuple(categories)
        self._user_id = user_id
        self._audit = audit_logger
        self._validator = LedgerValidator()
        self._channel = SnapshotChannel()
        self._pump: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

        self._accounts: tuple[Account, ...] = ()
        self._transactions: tuple[Transaction, ...] = ()
        self._version = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def backend(self) -> LedgerBackend:
        return self._backend

    @property
    def categories(self) -> tuple[Category, ...]:
        return self._categories

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_open(self) -> bool:
        return self._pump is not None

    async def open(self) -> None:
        """
        Load the initial ledger and start listening for snapshots.

        Raises:
            BackendUnavailableError: If the backend handshake fails
        """
        if self._pump is not None:
            return
        self._channel.bind(asyncio.get_running_loop())
        initial = await self._backend.open(self._user_id, self._channel)
        for snapshot in initial:
            self.apply_snapshot(snapshot)
        self._pump = asyncio.create_task(self._run_pump())
        logger.info(
            "ledger_opened",
            backend=self._backend.name,
            user_id=self._user_id,
            accounts=len(self._accounts),
            transactions=len(self._transactions),
        )

    async def close(self) -> None:
        """Stop the snapshot pump and tear down the backend feed."""
        self._channel.close()
        if self._pump is not None:
            await self._pump
            self._pump = None
        await self._backend.close()

    async def _run_pump(self) -> None:
        while True:
            snapshot = await self._channel.receive()
            if snapshot is None:
                break
            self.apply_snapshot(snapshot)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def current_view(self) -> LedgerSnapshot:
        """
        The ledger as it stands now.

        Reflects the latest mutation and every snapshot published so far.
        """
        self.process_pending()
        return LedgerSnapshot(
            accounts=self._accounts,
            transactions=self._transactions,
            version=self._version,
        )

    def get_account(self, account_id: str) -> Account:
        """
        Raises:
            NotFoundError: If no such account
        """
        return self._validator.require_account(self._accounts, account_id)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        name: str,
        institution: str,
        kind: Any,
        opening_balance: Any,
    ) -> Account:
        """
        Add a new account whose balance starts at ``opening_balance``.

        Raises:
            ValidationError: If any field is malformed
            BackendUnavailableError: If the remote write fails (account kept)
        """
        async with self._write_lock:
            self.process_pending()
            account = self._validator.build_account(
                account_id=self._backend.new_id(CollectionKind.ACCOUNTS),
                name=name,
                institution=institution,
                kind=kind,
                opening_balance=opening_balance,
            )

            self._accounts = (*self._accounts, account)
            self._version += 1

            await self._commit(
                CollectionKind.ACCOUNTS,
                [LedgerWrite.put(CollectionKind.ACCOUNTS, account.to_record(self._user_id))],
            )
        if self._audit:
            await self._audit.log_account_created(
                account_id=account.id,
                name=account.name,
                opening_balance=str(account.balance),
            )
        return account

    async def delete_account(self, account_id: str) -> None:
        """
        Remove an account and every transaction booked against it.

        Both disappear from the view in the same step. Deleting an
        account twice fails the second time.

        Raises:
            NotFoundError: If the account doesn't exist
            BackendUnavailableError: If the remote write fails (deletion kept)
        """
        async with self._write_lock:
            self.process_pending()
            account = self._validator.require_account(self._accounts, account_id)
            doomed = [t for t in self._transactions if t.account_id == account.id]

            self._accounts = tuple(a for a in self._accounts if a.id != account.id)
            self._transactions = tuple(
                t for t in self._transactions if t.account_id != account.id
            )
            self._version += 1

            writes = [LedgerWrite.delete(CollectionKind.ACCOUNTS, account.id)]
            writes.extend(
                LedgerWrite.delete(CollectionKind.TRANSACTIONS, t.id) for t in doomed
            )
            await self._commit(CollectionKind.ACCOUNTS, writes)
        if self._audit:
            await self._audit.log_account_deleted(
                account_id=account.id,
                removed_transactions=len(doomed),
            )

    async def record_transaction(
        self,
        account_id: str,
        category_id: str,
        amount: Any,
        kind: Any,
        on: date,
        note: str = "",
    ) -> Transaction:
        """
        Record an income or expense and move the account balance with it.

        The new transaction goes to the head of the view (most recent first).
        Against a remote backend the final order is whatever the next
        snapshot says.

        Raises:
            ValidationError: If amount <= 0 or any field is malformed
            NotFoundError: If the account or category doesn't exist
            BackendUnavailableError: If the remote write fails (change kept)
        """
        async with self._write_lock:
            self.process_pending()
            transaction = self._validator.build_transaction(
                transaction_id=self._backend.new_id(CollectionKind.TRANSACTIONS),
                account_id=account_id,
                category_id=category_id,
                amount=amount,
                kind=kind,
                on=on,
                note=note,
            )
            account = self._validator.require_account(self._accounts, transaction.account_id)
            self._validator.require_category(self._categories, transaction.category_id)

            updated = account.with_delta(transaction.signed_amount)
            self._transactions = (transaction, *self._transactions)
            self._accounts = tuple(
                updated if a.id == account.id else a for a in self._accounts
            )
            self._version += 1

            # The patch carries an absolute balance, so commits must land in call order
            await self._commit(
                CollectionKind.TRANSACTIONS,
                [
                    LedgerWrite.put(
                        CollectionKind.TRANSACTIONS,
                        transaction.to_record(self._user_id),
                    ),
                    LedgerWrite.patch(
                        CollectionKind.ACCOUNTS,
                        account.id,
                        {"balance": str(updated.balance)},
                    ),
                ],
            )
        if self._audit:
            await self._audit.log_transaction_recorded(
                transaction_id=transaction.id,
                account_id=account.id,
                kind=transaction.kind.value,
                amount=str(transaction.amount),
                new_balance=str(updated.balance),
            )
        return transaction

    async def _commit(self, collection: CollectionKind, writes: list[LedgerWrite]) -> None:
        try:
            await self._backend.commit(writes)
        except BackendUnavailableError as e:
            # No rollback: the next snapshot reconciles the cache
            if self._audit:
                await self._audit.log_backend_write_failed(
                    collection=collection.value,
                    error_message=str(e),
                )
            raise

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def process_pending(self) -> int:
        """Apply every snapshot waiting in the channel. Returns how many."""
        pending = self._channel.drain()
        for snapshot in pending:
            self.apply_snapshot(snapshot)
        return len(pending)

    def apply_snapshot(self, snapshot: CollectionSnapshot) -> None:
        """
        Replace one cached collection with the snapshot's contents.

        Transactions are re-sorted by date, newest first. Records that
        don't parse are skipped.
        """
        if snapshot.collection == CollectionKind.ACCOUNTS:
            self._accounts = tuple(self._parse(Account, snapshot.records))
        else:
            transactions = self._parse(Transaction, snapshot.records)
            transactions.sort(key=lambda t: t.date, reverse=True)
            self._transactions = tuple(transactions)
        self._version += 1
        logger.debug(
            "snapshot_applied",
            collection=snapshot.collection.value,
            records=len(snapshot.records),
            version=self._version,
        )

    def _parse(self, model: type, records: Iterable[dict[str, Any]]) -> list:
        parsed = []
        for record in records:
            try:
                parsed.append(model.model_validate(record))
            except SchemaError as e:
                logger.warning(
                    "snapshot_record_rejected",
                    model=model.__name__,
                    record_id=record.get("id"),
                    error=str(e),
                )
        return parsed

