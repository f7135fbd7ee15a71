"""
Default category catalog and demo dataset.

The demo dataset seeds the local backend so a demo session has
something to show before the user records anything.
"""

from datetime import date
from decimal import Decimal

from smartfinance.models.ledger import (
    Account,
    AccountKind,
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionKind,
)


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="cat-1", name="Food", icon="Utensils", color="#EF4444"),
    Category(id="cat-2", name="Transport", icon="Car", color="#3B82F6"),
    Category(id="cat-3", name="Salary", icon="Banknote", color="#10B981"),
    Category(id="cat-4", name="Shopping", icon="ShoppingBag", color="#F59E0B"),
    Category(id="cat-5", name="Entertainment", icon="Gamepad2", color="#8B5CF6"),
    Category(id="cat-6", name="Rent", icon="Home", color="#6B7280"),
    Category(id="cat-7", name="Investment", icon="TrendingUp", color="#EC4899"),
)


def demo_seed() -> LedgerSnapshot:
    """
    Sample ledger for demo sessions.

    Balances already include the sample transactions: the main account
    opened at 6350 and the savings fund at 115000.
    """
    accounts = (
        Account(
            id="acc-1",
            name="Main Account",
            institution="Cathay United Bank",
            balance=Decimal("50000"),
            kind=AccountKind.CHECKING,
        ),
        Account(
            id="acc-2",
            name="Savings Fund",
            institution="E.SUN Bank",
            balance=Decimal("120000"),
            kind=AccountKind.SAVINGS,
        ),
    )
    transactions = (
        Transaction(
            id="t-4", account_id="acc-2", category_id="cat-7",
            amount=Decimal("5000"), kind=TransactionKind.INCOME,
            date=date(2024, 3, 10), note="Dividend income",
        ),
        Transaction(
            id="t-3", account_id="acc-1", category_id="cat-2",
            amount=Decimal("1200"), kind=TransactionKind.EXPENSE,
            date=date(2024, 3, 5), note="Transit card top-up",
        ),
        Transaction(
            id="t-2", account_id="acc-1", category_id="cat-1",
            amount=Decimal("150"), kind=TransactionKind.EXPENSE,
            date=date(2024, 3, 2), note="Lunch",
        ),
        Transaction(
            id="t-1", account_id="acc-1", category_id="cat-3",
            amount=Decimal("45000"), kind=TransactionKind.INCOME,
            date=date(2024, 3, 1), note="March salary",
        ),
    )
    return LedgerSnapshot(accounts=accounts, transactions=transactions)
