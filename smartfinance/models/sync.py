"""
Synchronization Models

Messages exchanged between the ledger store and its storage backend:
- LedgerWrite: one operation in an atomic commit
- CollectionSnapshot: a full copy of one collection pushed by a backend
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CollectionKind(str, Enum):
    """The two persisted collections."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"


class WriteOp(str, Enum):
    """Kind of write inside a commit."""
    PUT = "put"        # insert a new record
    PATCH = "patch"    # update some fields of an existing record
    DELETE = "delete"  # remove a record


class LedgerWrite(BaseModel):
    """
    A single write operation.

    A list of these is committed as one atomic batch by the backend.
    """
    model_config = ConfigDict(frozen=True)

    op: WriteOp
    collection: CollectionKind
    record_id: str = Field(..., min_length=1)
    fields: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def put(cls, collection: CollectionKind, record: dict[str, Any]) -> "LedgerWrite":
        return cls(
            op=WriteOp.PUT,
            collection=collection,
            record_id=record["id"],
            fields=dict(record),
        )

    @classmethod
    def patch(
        cls,
        collection: CollectionKind,
        record_id: str,
        fields: dict[str, Any],
    ) -> "LedgerWrite":
        return cls(
            op=WriteOp.PATCH,
            collection=collection,
            record_id=record_id,
            fields=dict(fields),
        )

    @classmethod
    def delete(cls, collection: CollectionKind, record_id: str) -> "LedgerWrite":
        return cls(op=WriteOp.DELETE, collection=collection, record_id=record_id)


class CollectionSnapshot(BaseModel):
    """
    The complete current contents of one collection for one user.

    CRITICAL: A snapshot replaces the cached collection wholesale.
    It is never merged field-by-field.
    """
    model_config = ConfigDict(frozen=True)

    collection: CollectionKind
    records: tuple[dict[str, Any], ...] = ()
