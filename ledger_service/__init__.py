"""
Ledger Service

Account ledger with deposits, transfers and per-account transaction history.
Balances use Decimal precision and every balance change is recorded in an
append-only transaction log that the stored balances can be replayed from.
"""

__version__ = "1.0.0"
