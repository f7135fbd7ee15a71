"""
Audit Models for SmartFinance

Every user-visible change to the ledger is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when a remote write fails
3. A record of which backend a session actually ran on

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    MODE_FALLBACK = "mode_fallback"

    # Ledger mutations
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DELETED = "account_deleted"
    TRANSACTION_RECORDED = "transaction_recorded"
    BACKEND_WRITE_FAILED = "backend_write_failed"

    # Advice
    ADVICE_REQUESTED = "advice_requested"
    ADVICE_UNAVAILABLE = "advice_unavailable"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - which ledger entity and which user
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Backend id of the entity this event relates to"
    )
    user_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list[str]:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.user_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(account, user_id)
        event = AuditEventBuilder.backend_write_failed("transactions", error, user_id)
    """

    @staticmethod
    def session_started(mode: str, user_id: str, backend: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            entity_type="session",
            user_id=user_id,
            description=f"Session started in {mode} mode",
            details={"mode": mode, "backend": backend},
            is_user_action=True,
        )

    @staticmethod
    def session_ended(mode: str, user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            entity_type="session",
            user_id=user_id,
            description=f"Session ended ({mode} mode)",
            details={"mode": mode},
        )

    @staticmethod
    def mode_fallback(requested: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODE_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description=f"Requested {requested} mode unavailable, using demo",
            details={"requested": requested, "reason": reason},
        )

    @staticmethod
    def account_created(
        account_id: str,
        name: str,
        opening_balance: str,
        user_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            description=f"Account created: {name}",
            details={"name": name, "opening_balance": opening_balance},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        account_id: str,
        removed_transactions: int,
        user_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            description=(
                f"Account deleted with {removed_transactions} transactions"
            ),
            details={"removed_transactions": removed_transactions},
            is_user_action=True,
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: str,
        account_id: str,
        kind: str,
        amount: str,
        new_balance: str,
        user_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Recorded {kind} of {amount}",
            details={
                "account_id": account_id,
                "kind": kind,
                "amount": amount,
                "new_balance": new_balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def backend_write_failed(
        collection: str,
        error_message: str,
        user_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKEND_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            user_id=user_id,
            description=f"Remote write to {collection} failed, local change kept",
            error_message=error_message,
        )

    @staticmethod
    def advice_requested(user_id: Optional[str], transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_REQUESTED,
            entity_type="advice",
            user_id=user_id,
            description="Financial advice requested",
            details={"transaction_count": transaction_count},
            is_user_action=True,
        )

    @staticmethod
    def advice_unavailable(user_id: Optional[str], reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="advice",
            user_id=user_id,
            description="Financial advice unavailable",
            details={"reason": reason},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
