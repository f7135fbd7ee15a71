"""Data models package."""

from smartfinance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from smartfinance.models.catalog import DEFAULT_CATEGORIES, demo_seed
from smartfinance.models.ledger import (
    Account,
    AccountKind,
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionKind,
)
from smartfinance.models.sync import (
    CollectionKind,
    CollectionSnapshot,
    LedgerWrite,
    WriteOp,
)

__all__ = [
    # Ledger
    "Account",
    "AccountKind",
    "Category",
    "LedgerSnapshot",
    "Transaction",
    "TransactionKind",
    # Catalog
    "DEFAULT_CATEGORIES",
    "demo_seed",
    # Sync
    "CollectionKind",
    "CollectionSnapshot",
    "LedgerWrite",
    "WriteOp",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
