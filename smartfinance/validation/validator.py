"""
Two-Stage Ledger Validation

STAGE 1 - SCHEMA VALIDATION:
- Field types, required fields, enumerated kinds
- Strictly positive transaction amounts
- Handled by the pydantic models, translated into our ValidationError

STAGE 2 - REFERENCE VALIDATION:
- account_id must name an account in the current ledger
- category_id must name a category in the catalog

Stage 1 always runs first, so a malformed request is reported as a
ValidationError even when its references are also wrong.

IMPORTANT: Validation NEVER fixes input. It raises before anything
is written or cached.
"""

from datetime import date
from typing import Any, Iterable

from pydantic import ValidationError as SchemaError

from smartfinance.ledger.errors import NotFoundError, ValidationError
from smartfinance.models.ledger import Account, Category, Transaction


class LedgerValidator:
    """Builds ledger records and resolves their references."""

    def build_account(
        self,
        account_id: str,
        name: str,
        institution: str,
        kind: Any,
        opening_balance: Any,
    ) -> Account:
        """Stage 1 for a new account. The opening balance becomes the balance."""
        return self._build(
            Account,
            id=account_id,
            name=name,
            institution=institution,
            kind=kind,
            balance=opening_balance,
        )

    def build_transaction(
        self,
        transaction_id: str,
        account_id: str,
        category_id: str,
        amount: Any,
        kind: Any,
        on: date,
        note: str = "",
    ) -> Transaction:
        """Stage 1 for a new transaction."""
        return self._build(
            Transaction,
            id=transaction_id,
            account_id=account_id,
            category_id=category_id,
            amount=amount,
            kind=kind,
            date=on,
            note=note,
        )

    def require_account(self, accounts: Iterable[Account], account_id: str) -> Account:
        """Stage 2: resolve an account id against the current ledger."""
        for account in accounts:
            if account.id == account_id:
                return account
        raise NotFoundError("account", account_id)

    def require_category(
        self,
        categories: Iterable[Category],
        category_id: str,
    ) -> Category:
        """Stage 2: resolve a category id against the catalog."""
        for category in categories:
            if category.id == category_id:
                return category
        raise NotFoundError("category", category_id)

    def _build(self, model: type, **fields: Any):
        try:
            return model(**fields)
        except SchemaError as e:
            raise self._to_validation_error(e) from e

    @staticmethod
    def _to_validation_error(error: SchemaError) -> ValidationError:
        """Report the first offending field."""
        first = error.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "record"
        return ValidationError(field, first.get("msg", "invalid value"))

