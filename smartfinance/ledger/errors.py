"""
Ledger error taxonomy.

Every error is local to one operation and reported to its immediate
caller. None of them is fatal to the process.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """
    Malformed input (non-positive amount, unknown kind, missing field).

    Always reported synchronously and never retried.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


class NotFoundError(LedgerError):
    """Reference to an account, category or record that does not exist."""

    def __init__(self, entity: str, record_id: Optional[str]):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity.capitalize()} not found: {record_id}")


class BackendUnavailableError(LedgerError):
    """
    The remote backend could not be reached or rejected a write.

    The optimistic local change that triggered the write is NOT rolled back.
    """
    pass
