"""
Core Ledger Models for SmartFinance

These models define the schemas for accounts, categories and transactions.
They are designed to:
1. Enforce field validation at construction (no half-built records)
2. Be immutable - changes produce a new record via model_copy()
3. Round-trip through the flat record shape used by storage backends

DESIGN DECISION: Amounts are Decimal and always positive on a Transaction.
The direction of money is carried by TransactionKind, never by the sign.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountKind(str, Enum):
    """Kind of bank account. Informational only, balances work the same way."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


class TransactionKind(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Category(BaseModel):
    """
    A spending/income category from the fixed catalog.

    Categories are supplied at startup and never edited by users.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    icon: str = Field(default="Circle", description="Symbolic icon tag")
    color: str = Field(default="#6B7280", description="Display color hint")


class Account(BaseModel):
    """
    A bank account owned by the active ledger.

    The opening balance is folded into ``balance`` at creation and never
    stored separately; every transaction moves ``balance`` from then on.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    id: str = Field(..., min_length=1, description="Backend-assigned identifier")
    name: str = Field(..., min_length=1, max_length=100)
    institution: str = Field(default="", max_length=100, description="Bank name")
    balance: Decimal = Field(..., description="Current signed balance")
    kind: AccountKind = Field(default=AccountKind.CHECKING)

    def with_delta(self, delta: Decimal) -> "Account":
        """Return a copy of this account with ``delta`` applied to the balance."""
        return self.model_copy(update={"balance": self.balance + delta})

    def to_record(self, user_id: Optional[str] = None) -> dict[str, Any]:
        """Flat storage record, tagged with the owning user."""
        record = self.model_dump(mode="json")
        record["user_id"] = user_id or ""
        return record


class Transaction(BaseModel):
    """
    A single income or expense entry against one account.

    Transactions are never edited. They disappear only when their
    account is deleted.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    id: str = Field(..., min_length=1, description="Backend-assigned identifier")
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Positive magnitude")
    kind: TransactionKind
    date: date
    note: str = Field(default="", max_length=500)

    @property
    def signed_amount(self) -> Decimal:
        """Balance delta this transaction applies to its account."""
        if self.kind == TransactionKind.INCOME:
            return self.amount
        return -self.amount

    def to_record(self, user_id: Optional[str] = None) -> dict[str, Any]:
        """Flat storage record, tagged with the owning user."""
        record = self.model_dump(mode="json")
        record["user_id"] = user_id or ""
        return record


# =============================================================================
# READ VIEW
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    Read-only view of the ledger at one point in time.

    Handed to the aggregation functions and the advice agent.
    ``version`` increases every time the cached collections change.
    """
    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    version: int = 0

    def account(self, account_id: str) -> Optional[Account]:
        """Find an account by id."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def transactions_for(self, account_id: str) -> list[Transaction]:
        """All transactions booked against one account."""
        return [t for t in self.transactions if t.account_id == account_id]
