"""
Transaction Log Module

Append-only record of every completed money movement. Transactions are
written once by the ledger engine and never updated or deleted; the log is
the canonical audit trail from which account balances can be replayed.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import itertools
import threading
import uuid

from .storage import StorageInterface, StorageRecord
from .money import ZERO


class TransactionType(Enum):
    """Types of ledger transactions"""
    DEPOSIT = "deposit"     # Money enters an account from outside the ledger
    TRANSFER = "transfer"   # Money moves between two ledger accounts


@dataclass
class Transaction(StorageRecord):
    """
    Immutable record of a single completed deposit or transfer
    """
    transaction_type: TransactionType
    from_account_id: Optional[str]  # None for deposits
    to_account_id: Optional[str]
    amount: Decimal
    description: Optional[str] = None
    sequence: int = 0

    def __post_init__(self):
        if not isinstance(self.transaction_type, TransactionType):
            self.transaction_type = TransactionType(self.transaction_type)
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))

        if not self.amount > ZERO:
            raise ValueError("Transaction amount must be positive")

        if self.transaction_type == TransactionType.DEPOSIT:
            if self.from_account_id is not None or not self.to_account_id:
                raise ValueError("Deposit must have a destination and no source account")
        elif not self.from_account_id or not self.to_account_id:
            raise ValueError("Transfer must have both source and destination accounts")
        elif self.from_account_id == self.to_account_id:
            raise ValueError("Transfer source and destination must differ")

    @property
    def is_deposit(self) -> bool:
        return self.transaction_type == TransactionType.DEPOSIT

    @property
    def is_transfer(self) -> bool:
        return self.transaction_type == TransactionType.TRANSFER

    def involves(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)

    def effect_on(self, account_id: str) -> Decimal:
        """Signed balance change this transaction applies to an account"""
        effect = ZERO
        if self.to_account_id == account_id:
            effect += self.amount
        if self.from_account_id == account_id:
            effect -= self.amount
        return effect


class TransactionLog:
    """Append-only transaction store"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"
        self._sequence_lock = threading.Lock()
        self._sequence = itertools.count(self._last_sequence() + 1)

    def _last_sequence(self) -> int:
        records = self.storage.load_all(self.table_name)
        return max((int(record.get("sequence", 0)) for record in records), default=0)

    def _next_sequence(self) -> int:
        with self._sequence_lock:
            return next(self._sequence)

    def append(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        to_account_id: str,
        from_account_id: Optional[str] = None,
        description: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Transaction:
        """
        Record a completed movement.

        Raises:
            ValueError: if the references do not fit the transaction type
        """
        now = created_at or datetime.now(timezone.utc)
        transaction = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            transaction_type=transaction_type,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            description=description,
            sequence=self._next_sequence()
        )
        if self.storage.exists(self.table_name, transaction.id):
            raise ValueError(f"Transaction {transaction.id} already recorded")
        self.storage.save(self.table_name, transaction.id, transaction.to_dict())
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return self._transaction_from_dict(data)
        return None

    def all(self) -> List[Transaction]:
        """Every transaction in append order"""
        transactions = [self._transaction_from_dict(data) for data in self.storage.load_all(self.table_name)]
        transactions.sort(key=lambda t: t.sequence)
        return transactions

    def for_account(self, account_id: str) -> List[Transaction]:
        """
        Transactions where the account is source or destination,
        most recent first
        """
        matches: Dict[str, Dict[str, Any]] = {}
        for column in ("from_account_id", "to_account_id"):
            for data in self.storage.find(self.table_name, {column: account_id}):
                matches[data["id"]] = data

        transactions = [self._transaction_from_dict(data) for data in matches.values()]
        transactions.sort(key=lambda t: (t.created_at, t.sequence), reverse=True)
        return transactions

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def replay_balance(self, account_id: str) -> Decimal:
        """Rebuild an account's balance by summing its transactions from zero"""
        return sum((t.effect_on(account_id) for t in self.for_account(account_id)), ZERO)

    def _transaction_from_dict(self, data: Dict[str, Any]) -> Transaction:
        return Transaction.from_dict(data)
