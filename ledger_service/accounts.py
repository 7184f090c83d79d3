"""
Account Store Module

Holds account records: identity, owning user, account type and the cached
balance. Balances are written only by the ledger engine; this module never
adjusts them on its own.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any, Union
from enum import Enum
import random
import threading
import time
import uuid

from .storage import StorageInterface, StorageRecord
from .errors import AccountNotFound, AmbiguousAccountNumber
from .money import ZERO, quantize
from .logging_config import get_logger, log_action


class AccountType(Enum):
    """Kinds of account a user can hold"""
    BUSINESS = "business"
    STUDENT = "student"
    SAVINGS = "savings"
    PERSON = "person"
    SCHOOL = "school"


ACCOUNT_NUMBER_PREFIXES = {
    AccountType.BUSINESS: "BUS",
    AccountType.STUDENT: "STU",
    AccountType.SAVINGS: "SAV",
    AccountType.PERSON: "PER",
    AccountType.SCHOOL: "SCH",
}
DEFAULT_PREFIX = "GEN"


def account_number_prefix(account_type: Any) -> str:
    """Prefix for an account type, GEN for anything unrecognised"""
    if not isinstance(account_type, AccountType):
        try:
            account_type = AccountType(account_type)
        except ValueError:
            return DEFAULT_PREFIX
    return ACCOUNT_NUMBER_PREFIXES.get(account_type, DEFAULT_PREFIX)


def generate_account_number(account_type: Any) -> str:
    """
    Candidate account number: ``<PREFIX>-<6 clock digits><3 random digits>``.

    Not unique on its own; AccountStore checks candidates against existing
    accounts before assigning one.
    """
    clock_part = str(int(time.time() * 1000))[-6:]
    random_part = f"{random.randint(0, 999):03d}"
    return f"{account_number_prefix(account_type)}-{clock_part}{random_part}"


@dataclass
class Account(StorageRecord):
    """A named holder of a balance"""
    account_number: str
    user_id: str
    account_type: AccountType
    balance: Decimal = ZERO

    def __post_init__(self):
        if not isinstance(self.account_type, AccountType):
            self.account_type = AccountType(self.account_type)
        if not isinstance(self.balance, Decimal):
            self.balance = Decimal(str(self.balance))

    @property
    def prefix(self) -> str:
        return account_number_prefix(self.account_type)


class AccountStore:
    """
    Persists and looks up accounts.

    Account numbers are exact-match keys. Generated numbers are verified
    against the store before assignment; creation is serialized so the
    check and the insert cannot race inside one process.
    """

    def __init__(
        self,
        storage: StorageInterface,
        max_number_attempts: int = 5,
        number_generator: Callable[[AccountType], str] = generate_account_number
    ):
        self.storage = storage
        self.table_name = "accounts"
        self.max_number_attempts = max_number_attempts
        self._number_generator = number_generator
        self._create_lock = threading.Lock()
        self.logger = get_logger("ledger.accounts")

    def create_account(
        self,
        user_id: str,
        account_type: Union[AccountType, str],
        account_number: Optional[str] = None
    ) -> Account:
        """
        Create a new account with a zero balance.

        Args:
            user_id: Reference to the owning user
            account_type: Kind of account
            account_number: Explicit number (generated if not provided)

        Returns:
            Created Account object

        Raises:
            AmbiguousAccountNumber: if the explicit number is taken, or no
                unused number could be generated
        """
        account_type = AccountType(account_type)
        now = datetime.now(timezone.utc)

        with self._create_lock:
            if account_number:
                if self._number_in_use(account_number):
                    raise AmbiguousAccountNumber(f"Account number {account_number} is already in use")
            else:
                account_number = self._allocate_number(account_type)

            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=account_number,
                user_id=user_id,
                account_type=account_type,
                balance=ZERO
            )
            self.save(account)

        log_action(
            self.logger, "info", f"Account created: {account_number}",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_number": account_number, "user_id": user_id,
                   "account_type": account_type.value}
        )
        return account

    def _number_in_use(self, account_number: str) -> bool:
        return bool(self.storage.find(self.table_name, {"account_number": account_number}))

    def _allocate_number(self, account_type: AccountType) -> str:
        for attempt in range(1, self.max_number_attempts + 1):
            candidate = self._number_generator(account_type)
            if not self._number_in_use(candidate):
                return candidate
            self.logger.warning(f"Account number collision on attempt {attempt}: {candidate}")
        raise AmbiguousAccountNumber(
            f"Could not allocate an unused account number after {self.max_number_attempts} attempts"
        )

    def find_by_number(self, account_number: str) -> Account:
        """
        Exact-match lookup by account number.

        Raises:
            AccountNotFound: if no account has this number
            AmbiguousAccountNumber: if more than one account has it
        """
        matches = self.storage.find(self.table_name, {"account_number": account_number})
        if not matches:
            raise AccountNotFound(account_number)
        if len(matches) > 1:
            raise AmbiguousAccountNumber(f"Account number {account_number} matches {len(matches)} accounts")
        return self._account_from_dict(matches[0])

    def get(self, account_id: str) -> Optional[Account]:
        """Get account by internal ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return self._account_from_dict(data)
        return None

    def save(self, account: Account) -> None:
        """Persist the account's current balance and timestamps"""
        account.balance = quantize(account.balance)
        self.storage.save(self.table_name, account.id, account.to_dict())

    def list_accounts(self) -> List[Account]:
        return [self._account_from_dict(data) for data in self.storage.load_all(self.table_name)]

    def total_balance(self) -> Decimal:
        """Sum of balances over every account"""
        return sum((account.balance for account in self.list_accounts()), ZERO)

    def _account_from_dict(self, data: Dict[str, Any]) -> Account:
        return Account.from_dict(data)
