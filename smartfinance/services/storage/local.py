"""
In-Memory Storage Implementation

Used for demo sessions and as the fallback whenever no remote identity
or configuration is available. Data is lost when the session ends.

The local backend never suspends: commit() has no await inside it, so a
ledger operation against it runs to completion in one step.
"""

from collections import deque
from copy import deepcopy
from typing import Any, Optional
from uuid import uuid4

from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.ledger.errors import NotFoundError, ValidationError
from smartfinance.models.audit import AuditEvent
from smartfinance.models.ledger import LedgerSnapshot
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


class LocalLedgerBackend(LedgerBackend):
    """
    Synchronous, in-process ledger storage.

    Records are kept per collection, keyed by id, in insertion order.
    """

    name = "local"

    def __init__(self, seed: Optional[LedgerSnapshot] = None):
        self._collections: dict[CollectionKind, dict[str, dict[str, Any]]] = {
            kind: {} for kind in CollectionKind
        }
        self._user_id: Optional[str] = None
        self._seed = seed

    def new_id(self, collection: CollectionKind) -> str:
        return uuid4().hex

    async def open(
        self,
        user_id: Optional[str],
        channel: SnapshotChannel,
    ) -> list[CollectionSnapshot]:
        """Load the seed (if any) and hand back the current collections."""
        self._user_id = user_id
        if self._seed is not None:
            for account in self._seed.accounts:
                record = account.to_record(user_id)
                self._collections[CollectionKind.ACCOUNTS][account.id] = record
            for transaction in self._seed.transactions:
                record = transaction.to_record(user_id)
                self._collections[CollectionKind.TRANSACTIONS][transaction.id] = record
            self._seed = None
        return [self.snapshot(kind) for kind in CollectionKind]

    async def commit(self, writes: list[LedgerWrite]) -> None:
        """Check the whole batch, then apply it."""
        self._check(writes)
        for write in writes:
            records = self._collections[write.collection]
            if write.op == WriteOp.PUT:
                records[write.record_id] = deepcopy(write.fields)
            elif write.op == WriteOp.PATCH:
                records[write.record_id] = {
                    **records[write.record_id],
                    **deepcopy(write.fields),
                }
            else:
                del records[write.record_id]

    async def close(self) -> None:
        pass

    def snapshot(self, collection: CollectionKind) -> CollectionSnapshot:
        """Current contents of one collection."""
        return CollectionSnapshot(
            collection=collection,
            records=tuple(deepcopy(r) for r in self._collections[collection].values()),
        )

    def _check(self, writes: list[LedgerWrite]) -> None:
        # Track ids the batch itself creates or removes
        present = {
            kind: set(records) for kind, records in self._collections.items()
        }
        for write in writes:
            ids = present[write.collection]
            if write.op == WriteOp.PUT:
                if write.record_id in ids:
                    raise ValidationError("id", f"duplicate id {write.record_id}")
                ids.add(write.record_id)
            elif write.record_id not in ids:
                raise NotFoundError(write.collection.value.rstrip("s"), write.record_id)
            elif write.op == WriteOp.DELETE:
                ids.discard(write.record_id)


class InMemoryAuditStorage(AuditStorageInterface):
    """
    Audit storage for demo sessions.

    Keeps the most recent events only.
    """

    def __init__(self, max_events: int = 1000):
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = list(self._events)
        events.reverse()
        return events[:limit]
