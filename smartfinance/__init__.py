"""
SmartFinance - Ledger Package

A personal finance ledger: bank accounts, income/expense transactions,
and the balances and reports derived from them.

DESIGN PRINCIPLES:
1. Every account balance equals its opening balance plus its signed transactions
2. Mutations are atomic, whichever backend is active
3. Aggregates are derived on read, never stored
4. Remote snapshots win over local optimism
5. Storage backend is swappable (local demo or remote-synced)
"""

__version__ = "1.0.0"
__author__ = "SmartFinance Team"
