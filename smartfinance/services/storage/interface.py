"""
Abstract Storage Interface

DESIGN DECISION: The ledger store talks to exactly one LedgerBackend,
chosen when the session starts. This allows us to:
1. Run a demo session fully in memory
2. Run a live session against a remotely-synchronized store
3. Use fakes in tests
4. Never branch on the session mode inside the ledger store

The interface is intentionally small: allocate ids, open a feed,
commit an atomic batch of writes, close the feed.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.models.audit import AuditEvent
from smartfinance.models.sync import (
    CollectionKind,
    CollectionSnapshot,
    LedgerWrite,
)


class LedgerBackend(ABC):
    """
    Abstract interface for ledger persistence.

    Any backend (in-memory, Google Sheets, ...) must implement these methods.
    """

    #: Short name used in logs and audit events
    name: str = "backend"

    @abstractmethod
    def new_id(self, collection: CollectionKind) -> str:
        """
        Allocate the id for a record about to be written.

        Ids are chosen by the backend, never by the ledger store.
        """
        pass

    @abstractmethod
    async def open(
        self,
        user_id: Optional[str],
        channel: SnapshotChannel,
    ) -> list[CollectionSnapshot]:
        """
        Start the session against this backend.

        Args:
            user_id: Owner of the records to load and watch
            channel: Where later snapshots are published

        Returns:
            The initial snapshot of every collection

        Raises:
            BackendUnavailableError: If the initial handshake fails
        """
        pass

    @abstractmethod
    async def commit(self, writes: list[LedgerWrite]) -> None:
        """
        Apply a batch of writes atomically: all of them or none.

        Raises:
            ValidationError / NotFoundError: Local backend rejected the batch
            BackendUnavailableError: Remote backend could not apply it
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear down any subscription feeds. Safe to call twice."""
        pass

    async def write(self, collection: CollectionKind, record: dict[str, Any]) -> None:
        """Insert one record."""
        await self.commit([LedgerWrite.put(collection, record)])

    async def remove(self, collection: CollectionKind, record_id: str) -> None:
        """Delete one record."""
        await self.commit([LedgerWrite.delete(collection, record_id)])

    async def update(
        self,
        collection: CollectionKind,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        """Update some fields of one record."""
        await self.commit([LedgerWrite.patch(collection, record_id, fields)])


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass
