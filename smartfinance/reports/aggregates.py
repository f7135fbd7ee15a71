"""
Aggregation Engine

DESIGN DECISION: Aggregates are DERIVED, never stored.
Every function here is pure: it reads a snapshot of accounts and
transactions and returns a new value. Nothing is cached, so there is no
second copy of the numbers that could drift from the ledger.

Period matching is by calendar components (year and month of the
transaction date), not by elapsed time.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from smartfinance.models.ledger import (
    Account,
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionKind,
)


ZERO = Decimal("0")
RECENT_LIMIT = 5


class ReportPeriod(BaseModel):
    """A calendar month."""
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1)
    month: int = Field(..., ge=1, le=12)

    @classmethod
    def current(cls, today: Optional[date] = None) -> "ReportPeriod":
        """The month containing ``today`` (the wall-clock date by default)."""
        today = today or date.today()
        return cls(year=today.year, month=today.month)

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class CategoryTotal(BaseModel):
    """Expense total for one category."""
    model_config = ConfigDict(frozen=True)

    category: Category
    total: Decimal


class MonthlyTotals(BaseModel):
    """Income and expense for one calendar month."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class DashboardSummary(BaseModel):
    """Everything the dashboard and reports pages show."""
    model_config = ConfigDict(frozen=True)

    total_assets: Decimal
    period: ReportPeriod
    period_expense: Decimal
    breakdown: tuple[CategoryTotal, ...]
    monthly_series: tuple[MonthlyTotals, ...]
    recent: tuple[Transaction, ...]


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def total_assets(accounts: Iterable[Account]) -> Decimal:
    """Sum of all account balances."""
    return _sum(account.balance for account in accounts)


def total_income(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of all income amounts."""
    return _sum(
        t.amount for t in transactions if t.kind == TransactionKind.INCOME
    )


def total_expense(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of all expense amounts."""
    return _sum(
        t.amount for t in transactions if t.kind == TransactionKind.EXPENSE
    )


def period_expense(
    transactions: Iterable[Transaction],
    period: ReportPeriod,
) -> Decimal:
    """Expense total for transactions dated inside ``period``."""
    return _sum(
        t.amount
        for t in transactions
        if t.kind == TransactionKind.EXPENSE and period.contains(t.date)
    )


def category_breakdown(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
) -> list[CategoryTotal]:
    """
    Expense total per category.

    Categories whose total is zero are left out (not zero-filled).
    Remaining entries keep the catalog order.
    """
    totals: dict[str, Decimal] = {}
    for t in transactions:
        if t.kind != TransactionKind.EXPENSE:
            continue
        totals[t.category_id] = totals.get(t.category_id, ZERO) + t.amount

    return [
        CategoryTotal(category=category, total=totals[category.id])
        for category in categories
        if totals.get(category.id, ZERO) > 0
    ]


def monthly_series(
    transactions: Iterable[Transaction],
    year: int,
) -> list[MonthlyTotals]:
    """
    Income and expense for each of the 12 months of ``year``.

    Always 12 entries; index 0 is January.
    """
    income = [ZERO] * 12
    expense = [ZERO] * 12
    for t in transactions:
        if t.date.year != year:
            continue
        index = t.date.month - 1
        if t.kind == TransactionKind.INCOME:
            income[index] += t.amount
        else:
            expense[index] += t.amount

    return [
        MonthlyTotals(month=index + 1, income=income[index], expense=expense[index])
        for index in range(12)
    ]


def build_dashboard(
    snapshot: LedgerSnapshot,
    categories: Sequence[Category],
    today: Optional[date] = None,
) -> DashboardSummary:
    """
    Compute the dashboard figures for the month containing ``today``.

    ``recent`` is the head of the view, which is already newest first.
    """
    period = ReportPeriod.current(today)
    return DashboardSummary(
        total_assets=total_assets(snapshot.accounts),
        period=period,
        period_expense=period_expense(snapshot.transactions, period),
        breakdown=tuple(category_breakdown(snapshot.transactions, categories)),
        monthly_series=tuple(monthly_series(snapshot.transactions, period.year)),
        recent=tuple(snapshot.transactions[:RECENT_LIMIT]),
    )
