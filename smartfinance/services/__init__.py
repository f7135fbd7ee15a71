"""Services package."""

from smartfinance.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerBackend,
    InMemoryAuditStorage,
    LedgerBackend,
    LocalLedgerBackend,
    SheetWatcher,
)

__all__ = [
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerBackend",
    "InMemoryAuditStorage",
    "LedgerBackend",
    "LocalLedgerBackend",
    "SheetWatcher",
]
