"""
Storage Services Package

Provides the abstract ledger backend interface and its implementations:
an in-memory backend for demo sessions and a Google Sheets backend for
live, multi-client sessions.
"""

from smartfinance.services.storage.interface import (
    AuditStorageInterface,
    LedgerBackend,
)
from smartfinance.services.storage.local import (
    InMemoryAuditStorage,
    LocalLedgerBackend,
)
from smartfinance.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
    SheetWatcher,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerBackend",
    # In-memory implementation
    "InMemoryAuditStorage",
    "LocalLedgerBackend",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerBackend",
    "SheetWatcher",
]
