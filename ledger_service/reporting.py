"""
History Reporting Module

Read-only reconstruction of an account's transaction history: each entry is
classified by direction from the queried account's point of view, the
counterparties are denormalized for display, and the entries are split into
disjoint buckets with summary totals.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum

from .accounts import Account, AccountStore
from .transactions import Transaction, TransactionLog, TransactionType
from .directory import Holder, UserDirectory
from .errors import LedgerError, StoreFailure
from .money import ZERO, format_amount
from .logging_config import get_logger


class Direction(Enum):
    """Direction of a transaction relative to the queried account"""
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    UNKNOWN = "unknown"


def classify_direction(transaction: Transaction, account_id: str) -> Direction:
    """Incoming if the account is the destination, outgoing if it is the source"""
    if transaction.to_account_id == account_id:
        return Direction.INCOMING
    if transaction.from_account_id == account_id:
        return Direction.OUTGOING
    return Direction.UNKNOWN


@dataclass
class PartyView:
    """One end of a transaction, as shown in history"""
    account_number: str
    account_type: str
    holder: Holder

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountNumber": self.account_number,
            "accountType": self.account_type,
            "accountHolderName": self.holder.name,
            "accountHolderEmail": self.holder.email,
        }


@dataclass
class HistoryEntry:
    transaction_id: str
    transaction_type: TransactionType
    amount: Decimal
    description: Optional[str]
    date: datetime
    direction: Direction
    from_party: Optional[PartyView]
    to_party: Optional[PartyView]
    status: str = "completed"

    @property
    def is_outgoing_transfer(self) -> bool:
        return self.direction == Direction.OUTGOING and self.transaction_type == TransactionType.TRANSFER

    @property
    def is_incoming(self) -> bool:
        return self.direction == Direction.INCOMING

    @property
    def formatted_date(self) -> str:
        return f"{self.date:%B} {self.date.day}, {self.date.year}"

    @property
    def formatted_time(self) -> str:
        return f"{self.date:%I:%M:%S %p}"

    @property
    def transfer_summary(self) -> Optional[str]:
        amount = format_amount(self.amount)
        if self.transaction_type == TransactionType.TRANSFER:
            if self.direction == Direction.OUTGOING:
                return f"Transferred k{amount} to {_party_label(self.to_party)}"
            if self.direction == Direction.INCOMING:
                return f"Received k{amount} from {_party_label(self.from_party)}"
            return None
        return f"Deposit of k{amount} to your account"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "type": self.transaction_type.value,
            "amount": str(self.amount),
            "description": self.description,
            "date": self.date.isoformat(),
            "formattedDate": self.formatted_date,
            "formattedTime": self.formatted_time,
            "dateTimeString": f"{self.formatted_date} at {self.formatted_time}",
            "direction": self.direction.value,
            "transferSummary": self.transfer_summary,
            "from": self.from_party.to_dict() if self.from_party else None,
            "to": self.to_party.to_dict() if self.to_party else None,
            "status": self.status,
        }


def _party_label(party: Optional[PartyView]) -> str:
    if party is None:
        return "Unknown (Unknown)"
    return f"{party.holder.name} ({party.account_number})"


def partition_entries(
    entries: List[HistoryEntry]
) -> Tuple[List[HistoryEntry], List[HistoryEntry], List[HistoryEntry]]:
    """
    Split entries into outgoing transfers, incoming transactions and the
    rest. The three buckets are disjoint and together hold every entry.
    """
    outgoing, incoming, other = [], [], []
    for entry in entries:
        if entry.is_outgoing_transfer:
            outgoing.append(entry)
        elif entry.is_incoming:
            incoming.append(entry)
        else:
            other.append(entry)
    return outgoing, incoming, other


@dataclass
class HistorySummary:
    total_transactions: int
    outgoing_transfers: int
    incoming_transactions: int
    total_amount_sent: Decimal
    total_amount_received: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "outgoingTransfers": self.outgoing_transfers,
            "incomingTransactions": self.incoming_transactions,
            "totalAmountSent": str(self.total_amount_sent),
            "totalAmountReceived": str(self.total_amount_received),
        }


@dataclass
class HistoryReport:
    account: Account
    holder: Holder
    summary: HistorySummary
    outgoing_transfers: List[HistoryEntry] = field(default_factory=list)
    incoming_transactions: List[HistoryEntry] = field(default_factory=list)
    other_transactions: List[HistoryEntry] = field(default_factory=list)
    all_transactions: List[HistoryEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Transaction history retrieved successfully",
            "account": {
                "accountNumber": self.account.account_number,
                "accountType": self.account.account_type.value,
                "accountHolderName": self.holder.name,
                "accountHolderEmail": self.holder.email,
                "currentBalance": str(self.account.balance),
            },
            "summary": self.summary.to_dict(),
            "outgoingTransfers": [e.to_dict() for e in self.outgoing_transfers],
            "incomingTransactions": [e.to_dict() for e in self.incoming_transactions],
            "otherTransactions": [e.to_dict() for e in self.other_transactions],
            "allTransactions": [e.to_dict() for e in self.all_transactions],
        }


@dataclass
class ReconciliationResult:
    """Stored balance against the balance replayed from the log"""
    account_number: str
    stored_balance: Decimal
    replayed_balance: Decimal
    transaction_count: int

    @property
    def is_balanced(self) -> bool:
        return self.stored_balance == self.replayed_balance


class HistoryReporter:
    """
    Builds per-account history reports.

    Reads take the queried account's lock (shared with the ledger engine) so
    the balance and the transaction set come from the same committed state.
    """

    def __init__(
        self,
        accounts: AccountStore,
        log: TransactionLog,
        directory: Optional[UserDirectory] = None,
        locks=None
    ):
        self.accounts = accounts
        self.log = log
        self.directory = directory
        self.locks = locks
        self.logger = get_logger("ledger.reporting")

    def history(self, account_number: str) -> HistoryReport:
        """
        Transaction history for an account, most recent first.

        Raises:
            AccountNotFound: no account has this number
        """
        account, transactions = self._snapshot(account_number)

        parties: Dict[str, Optional[PartyView]] = {}
        entries = [self._entry(txn, account, parties) for txn in transactions]

        outgoing, incoming, other = partition_entries(entries)
        summary = HistorySummary(
            total_transactions=len(entries),
            outgoing_transfers=len(outgoing),
            incoming_transactions=len(incoming),
            total_amount_sent=sum((e.amount for e in outgoing), ZERO),
            total_amount_received=sum((e.amount for e in incoming), ZERO),
        )

        return HistoryReport(
            account=account,
            holder=self._holder(account.user_id),
            summary=summary,
            outgoing_transfers=outgoing,
            incoming_transactions=incoming,
            other_transactions=other,
            all_transactions=entries,
        )

    def reconcile(self, account_number: str) -> ReconciliationResult:
        """Replay the account's transactions from zero and compare"""
        account, transactions = self._snapshot(account_number)
        replayed = sum((t.effect_on(account.id) for t in transactions), ZERO)
        result = ReconciliationResult(
            account_number=account.account_number,
            stored_balance=account.balance,
            replayed_balance=replayed,
            transaction_count=len(transactions),
        )
        if not result.is_balanced:
            self.logger.error(
                f"Balance mismatch for {account_number}: stored {account.balance}, replayed {replayed}"
            )
        return result

    def _snapshot(self, account_number: str) -> Tuple[Account, List[Transaction]]:
        if self.locks is None:
            return self._read(account_number)
        with self.locks.hold(account_number):
            return self._read(account_number)

    def _read(self, account_number: str) -> Tuple[Account, List[Transaction]]:
        try:
            account = self.accounts.find_by_number(account_number)
            return account, self.log.for_account(account.id)
        except LedgerError:
            raise
        except Exception as e:
            raise StoreFailure(f"History lookup failed: {e}") from e

    def _entry(
        self,
        transaction: Transaction,
        account: Account,
        parties: Dict[str, Optional[PartyView]]
    ) -> HistoryEntry:
        return HistoryEntry(
            transaction_id=transaction.id,
            transaction_type=transaction.transaction_type,
            amount=transaction.amount,
            description=transaction.description,
            date=transaction.created_at,
            direction=classify_direction(transaction, account.id),
            from_party=self._party(transaction.from_account_id, parties),
            to_party=self._party(transaction.to_account_id, parties),
        )

    def _party(self, account_id: Optional[str], parties: Dict[str, Optional[PartyView]]) -> Optional[PartyView]:
        if account_id is None:
            return None
        if account_id not in parties:
            party_account = self.accounts.get(account_id)
            if party_account is None:
                parties[account_id] = None
            else:
                parties[account_id] = PartyView(
                    account_number=party_account.account_number,
                    account_type=party_account.account_type.value,
                    holder=self._holder(party_account.user_id),
                )
        return parties[account_id]

    def _holder(self, user_id: str) -> Holder:
        if self.directory is None:
            return Holder.unknown()
        return self.directory.safe_resolve(user_id)
