"""
Ledger package.

The store itself lives in smartfinance.ledger.store; only the error
types and the snapshot channel are re-exported here because the storage
backends depend on them.
"""

from smartfinance.ledger.channel import SnapshotChannel
from smartfinance.ledger.errors import (
    BackendUnavailableError,
    LedgerError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "BackendUnavailableError",
    "LedgerError",
    "NotFoundError",
    "SnapshotChannel",
    "ValidationError",
]
