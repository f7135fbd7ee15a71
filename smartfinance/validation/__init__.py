"""Ledger validation package."""

from smartfinance.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
