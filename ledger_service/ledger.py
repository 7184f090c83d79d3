"""
Ledger Engine Module

Executes deposits and transfers against the account store, recording one
transaction per successful operation. Balance changes and the transaction
append for an operation form a single atomic unit: either all of them are
persisted or none are.

Concurrency: every operation holds the locks of the accounts it touches
(acquired in sorted order) from the balance read until the unit commits, so
operations sharing an account serialize and operations on disjoint accounts
run in parallel.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from contextlib import contextmanager
import threading
import time

from .storage import StorageInterface
from .accounts import Account, AccountStore, AccountType
from .transactions import Transaction, TransactionLog, TransactionType
from .directory import Holder, UserDirectory
from .events import DomainEvent, EventDispatcher, EventPayload
from .errors import (
    LedgerError, InvalidTransfer, InsufficientFunds,
    StoreFailure, OperationTimeout
)
from .money import parse_amount
from .logging_config import get_logger, log_action

DEFAULT_TRANSFER_DESCRIPTION = "Money transfer"

FaultHook = Callable[[str], None]


class Deadline:
    """Caller-supplied time limit for the lookup phase of an operation"""

    def __init__(self, timeout: Optional[float] = None):
        self.expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return self.expires_at - time.monotonic()

    def check(self, phase: str) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise OperationTimeout(f"Operation timed out during {phase}")


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class AccountLocks:
    """
    One lock per account number, handed out on demand.

    An entry lives only while some thread holds or waits for it, so lookups
    of numbers that do not exist leave nothing behind.
    """

    def __init__(self):
        self._locks: Dict[str, _LockEntry] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, account_number: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(account_number)
            if entry is None:
                entry = self._locks[account_number] = _LockEntry()
            entry.users += 1
            return entry.lock

    def _checkin(self, account_number: str) -> None:
        with self._guard:
            entry = self._locks[account_number]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[account_number]

    @contextmanager
    def hold(self, *account_numbers: str, deadline: Optional[Deadline] = None):
        """
        Hold the locks for every given account.

        Locks are taken in sorted order so two operations on the same pair
        can never deadlock.

        Raises:
            OperationTimeout: if the deadline passes while waiting
        """
        checked_out = []
        acquired = []
        try:
            for account_number in sorted(set(account_numbers)):
                lock = self._checkout(account_number)
                checked_out.append(account_number)
                remaining = deadline.remaining() if deadline else None
                if remaining is None:
                    lock.acquire()
                elif remaining <= 0 or not lock.acquire(timeout=remaining):
                    raise OperationTimeout(f"Timed out waiting for account {account_number}")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for account_number in checked_out:
                self._checkin(account_number)


@dataclass
class DepositResult:
    """Outcome of a successful deposit"""
    account: Account
    transaction: Transaction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Deposit successful.",
            "transaction": {
                "transactionId": self.transaction.id,
                "to": self.account.account_number,
                "amount": str(self.transaction.amount),
                "type": self.transaction.transaction_type.value,
                "description": self.transaction.description,
                "createdAt": self.transaction.created_at.isoformat(),
            },
            "account": {
                "accountNumber": self.account.account_number,
                "balance": str(self.account.balance),
                "type": self.account.account_type.value,
                "updatedAt": self.account.updated_at.isoformat(),
            },
        }


@dataclass
class TransferResult:
    """Outcome of a successful transfer, with holder identities denormalized"""
    from_account: Account
    to_account: Account
    from_holder: Holder
    to_holder: Holder
    transaction: Transaction

    @property
    def description(self) -> str:
        return self.transaction.description or DEFAULT_TRANSFER_DESCRIPTION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Transfer successful.",
            "transfer": {
                "amount": str(self.transaction.amount),
                "description": self.description,
                "timestamp": self.transaction.created_at.isoformat(),
            },
            "fromAccount": {
                "accountNumber": self.from_account.account_number,
                "remainingBalance": str(self.from_account.balance),
                "accountType": self.from_account.account_type.value,
                "accountHolderName": self.from_holder.name,
                "accountHolderEmail": self.from_holder.email,
            },
            "toAccount": {
                "accountNumber": self.to_account.account_number,
                "newBalance": str(self.to_account.balance),
                "accountType": self.to_account.account_type.value,
                "accountHolderName": self.to_holder.name,
                "accountHolderEmail": self.to_holder.email,
            },
            "transaction": {
                "transactionId": self.transaction.id,
                "from": {
                    "accountNumber": self.from_account.account_number,
                    "accountHolderName": self.from_holder.name,
                },
                "to": {
                    "accountNumber": self.to_account.account_number,
                    "accountHolderName": self.to_holder.name,
                },
                "amount": str(self.transaction.amount),
                "type": self.transaction.transaction_type.value,
                "description": self.transaction.description,
                "createdAt": self.transaction.created_at.isoformat(),
            },
        }


class LedgerEngine:
    """
    The only component allowed to change balances.

    ``fault_hook`` is called with the name of each internal commit point
    (``after_debit``, ``after_credit``, ``before_append``, ``after_append``);
    an exception raised there aborts and rolls back the unit.
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        log: TransactionLog,
        directory: Optional[UserDirectory] = None,
        dispatcher: Optional[EventDispatcher] = None,
        locks: Optional[AccountLocks] = None,
        default_timeout: Optional[float] = None,
        fault_hook: Optional[FaultHook] = None
    ):
        self.storage = storage
        self.accounts = accounts
        self.log = log
        self.directory = directory
        self.dispatcher = dispatcher
        self.locks = locks or AccountLocks()
        self.default_timeout = default_timeout
        self.fault_hook = fault_hook
        self.logger = get_logger("ledger.engine")

    def open_account(
        self,
        user_id: str,
        account_type: Union[AccountType, str],
        initial_deposit: Any = None,
        account_number: Optional[str] = None
    ) -> Account:
        """
        Create an account, optionally funding it with an opening deposit.

        The opening balance goes through ``deposit`` so it is recorded in the
        transaction log like any other credit. ACCOUNT_OPENED is published only
        once the account is fully opened. If the opening deposit fails the
        account stays open with a zero balance and the error propagates;
        funding it again is up to the caller.
        """
        if initial_deposit is not None:
            parse_amount(initial_deposit)

        account = self.accounts.create_account(user_id, account_type, account_number=account_number)
        if initial_deposit is not None:
            account = self.deposit(account.account_number, initial_deposit, "Opening deposit").account

        self._publish(DomainEvent.ACCOUNT_OPENED, "account", account.id, {
            "account_number": account.account_number,
            "user_id": user_id,
            "account_type": account.account_type.value,
            "balance": str(account.balance),
        })
        return account

    def deposit(
        self,
        account_number: str,
        amount: Any,
        description: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> DepositResult:
        """
        Credit an account from outside the ledger.

        Raises:
            InvalidAmount: amount is not a positive number
            AccountNotFound: no account has this number
            OperationTimeout: deadline passed before any write
            StoreFailure: persistence failed; nothing was written
        """
        amount = parse_amount(amount)
        deadline = self._deadline(timeout)

        with self.locks.hold(account_number, deadline=deadline):
            deadline.check("lookup")
            account = self._find(account_number)
            deadline.check("lookup")

            with self._atomic("deposit"):
                account.balance += amount
                account.updated_at = datetime.now(timezone.utc)
                self.accounts.save(account)
                self._checkpoint("after_credit")

                self._checkpoint("before_append")
                transaction = self.log.append(
                    TransactionType.DEPOSIT,
                    amount,
                    to_account_id=account.id,
                    description=description,
                )
                self._checkpoint("after_append")

        log_action(
            self.logger, "info", f"Deposit completed: {amount} to {account_number}",
            action="deposit", resource=f"transaction:{transaction.id}",
            extra={"account_number": account_number, "amount": str(amount),
                   "balance": str(account.balance)}
        )

        if self.dispatcher:
            holder = self._holder(account)
            self._publish(DomainEvent.DEPOSIT_COMPLETED, "transaction", transaction.id, {
                "account_number": account.account_number,
                "amount": str(amount),
                "balance": str(account.balance),
                "holder_email": holder.email,
            })

        return DepositResult(account=account, transaction=transaction)

    def transfer(
        self,
        from_account_number: str,
        to_account_number: str,
        amount: Any,
        description: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> TransferResult:
        """
        Move money between two ledger accounts.

        Raises:
            InvalidAmount: amount is not a positive number
            InvalidTransfer: missing account numbers or source equals destination
            AccountNotFound: either account does not exist
            InsufficientFunds: source balance is below the amount
            OperationTimeout: deadline passed before any write
            StoreFailure: persistence failed; nothing was written
        """
        amount = parse_amount(amount)
        if not from_account_number or not to_account_number:
            raise InvalidTransfer("Source and destination accounts are required")
        if from_account_number == to_account_number:
            raise InvalidTransfer("Cannot transfer to the same account")

        deadline = self._deadline(timeout)

        with self.locks.hold(from_account_number, to_account_number, deadline=deadline):
            deadline.check("lookup")
            source = self._find(from_account_number)
            destination = self._find(to_account_number)
            if source.id == destination.id:
                raise InvalidTransfer("Cannot transfer to the same account")

            if source.balance < amount:
                log_action(
                    self.logger, "warning", f"Transfer rejected: insufficient funds in {from_account_number}",
                    action="transfer", resource=f"account:{source.id}",
                    extra={"from": from_account_number, "to": to_account_number,
                           "amount": str(amount), "balance": str(source.balance)}
                )
                raise InsufficientFunds(
                    "Insufficient funds",
                    {"available": str(source.balance), "requested": str(amount)}
                )
            deadline.check("lookup")

            with self._atomic("transfer"):
                now = datetime.now(timezone.utc)

                source.balance -= amount
                source.updated_at = now
                self.accounts.save(source)
                self._checkpoint("after_debit")

                destination.balance += amount
                destination.updated_at = now
                self.accounts.save(destination)
                self._checkpoint("after_credit")

                self._checkpoint("before_append")
                transaction = self.log.append(
                    TransactionType.TRANSFER,
                    amount,
                    to_account_id=destination.id,
                    from_account_id=source.id,
                    description=description,
                    created_at=now,
                )
                self._checkpoint("after_append")

        log_action(
            self.logger, "info", f"Transfer completed: {amount} from {from_account_number} to {to_account_number}",
            action="transfer", resource=f"transaction:{transaction.id}",
            extra={"from": from_account_number, "to": to_account_number, "amount": str(amount)}
        )

        result = TransferResult(
            from_account=source,
            to_account=destination,
            from_holder=self._holder(source),
            to_holder=self._holder(destination),
            transaction=transaction,
        )

        self._publish(DomainEvent.TRANSFER_COMPLETED, "transaction", transaction.id, {
            "from_account_number": source.account_number,
            "to_account_number": destination.account_number,
            "amount": str(amount),
            "from_holder_email": result.from_holder.email,
            "to_holder_email": result.to_holder.email,
        })

        return result

    def _deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(timeout if timeout is not None else self.default_timeout)

    def _find(self, account_number: str) -> Account:
        try:
            return self.accounts.find_by_number(account_number)
        except LedgerError:
            raise
        except Exception as e:
            raise StoreFailure(f"Account lookup failed: {e}") from e

    @contextmanager
    def _atomic(self, operation: str):
        try:
            with self.storage.atomic():
                yield
        except LedgerError:
            raise
        except Exception as e:
            self.logger.error(f"{operation} rolled back: {e}")
            raise StoreFailure(f"{operation.capitalize()} failed and was rolled back: {e}") from e

    def _checkpoint(self, point: str) -> None:
        if self.fault_hook:
            self.fault_hook(point)

    def _holder(self, account: Account) -> Holder:
        if self.directory is None:
            return Holder.unknown()
        return self.directory.safe_resolve(account.user_id)

    def _publish(self, event_type: DomainEvent, entity_type: str, entity_id: str, data: Dict[str, Any]) -> None:
        """Publish after commit; a failing dispatcher never reaches the caller"""
        if not self.dispatcher:
            return
        try:
            self.dispatcher.publish(EventPayload(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                data=data,
            ))
        except Exception as e:
            self.logger.error(f"Error publishing event {event_type.value}: {e}")
