"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a remote write fails
3. A history the user can inspect

The audit logger:
- Is async so persisting to a remote sheet does not block the event loop
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

from typing import Optional

import structlog

from smartfinance.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from smartfinance.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (in memory for demo sessions, a sheet for live ones)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            user_id: Stamped on events that don't carry one
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger("smartfinance.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.user_id is None and self._user_id is not None:
            event = event.model_copy(update={"user_id": self._user_id})

        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        account_id: str,
        name: str,
        opening_balance: str,
    ) -> None:
        """Log account creation."""
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            name=name,
            opening_balance=opening_balance,
            user_id=self._user_id,
        ))

    async def log_account_deleted(
        self,
        account_id: str,
        removed_transactions: int,
    ) -> None:
        """Log account deletion and its cascade."""
        await self.log(AuditEventBuilder.account_deleted(
            account_id=account_id,
            removed_transactions=removed_transactions,
            user_id=self._user_id,
        ))

    async def log_transaction_recorded(
        self,
        transaction_id: str,
        account_id: str,
        kind: str,
        amount: str,
        new_balance: str,
    ) -> None:
        """Log a recorded transaction and the balance it produced."""
        await self.log(AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            account_id=account_id,
            kind=kind,
            amount=amount,
            new_balance=new_balance,
            user_id=self._user_id,
        ))

    async def log_backend_write_failed(
        self,
        collection: str,
        error_message: str,
    ) -> None:
        """Log a failed remote write."""
        await self.log(AuditEventBuilder.backend_write_failed(
            collection=collection,
            error_message=error_message,
            user_id=self._user_id,
        ))

