"""
Ledger Error Taxonomy

Every failure the ledger reports carries a stable ``kind``, a human-readable
message and a ``retryable`` flag. Domain errors are client errors and are
never retried; StoreFailure and OperationTimeout leave no partial writes and
are safe to retry.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""

    kind = "LedgerError"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "kind": self.kind,
            "retryable": self.retryable,
        }


class AccountNotFound(LedgerError):
    kind = "NotFound"

    def __init__(self, account_number: str):
        super().__init__("Account not found", {"account_number": account_number})
        self.account_number = account_number


class InvalidAmount(LedgerError):
    kind = "InvalidAmount"


class InvalidTransfer(LedgerError):
    kind = "InvalidTransfer"


class InsufficientFunds(LedgerError):
    kind = "InsufficientFunds"


class AmbiguousAccountNumber(LedgerError):
    """Account number matches more than one account, or generation kept colliding"""
    kind = "AmbiguousAccountNumber"


class StoreFailure(LedgerError):
    """Persistence failed; the whole unit was rolled back"""
    kind = "StoreFailure"
    retryable = True


class OperationTimeout(LedgerError):
    """Deadline passed before any mutation was made"""
    kind = "Timeout"
    retryable = True
