"""
Ledger endpoints: deposits, transfers, history and account lookup

Handlers are plain functions so FastAPI runs them in its threadpool; the
engine blocks on account locks and must not hold up the event loop.
"""

from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import DepositRequest, TransferRequest, OpenAccountRequest


router = APIRouter()


@router.post("/deposit")
def deposit(
    request: DepositRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Deposit money into an account"""
    result = system.engine.deposit(
        request.account_number,
        request.amount,
        description=request.description
    )
    return result.to_dict()


@router.post("/transfer")
def transfer(
    request: TransferRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer money between two accounts"""
    result = system.engine.transfer(
        request.from_account_number,
        request.to_account_number,
        request.amount,
        description=request.description
    )
    return result.to_dict()


@router.get("/transactions/{account_number}")
def transaction_history(
    account_number: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get the transaction history of an account, newest first"""
    return system.reporter.history(account_number).to_dict()


@router.post("/accounts", status_code=201)
def open_account(
    request: OpenAccountRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Open an account, optionally with an opening deposit"""
    account = system.engine.open_account(
        request.user_id,
        request.account_type,
        initial_deposit=request.initial_deposit
    )
    return {
        "message": "Account created successfully",
        "account": _account_view(system, account),
    }


@router.get("/accounts/{account_number}")
def get_account(
    account_number: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get an account by number"""
    account = system.accounts.find_by_number(account_number)
    return {"account": _account_view(system, account)}


def _account_view(system: LedgerSystem, account) -> dict:
    holder = system.directory.safe_resolve(account.user_id)
    return {
        "accountNumber": account.account_number,
        "accountType": account.account_type.value,
        "balance": str(account.balance),
        "accountHolderName": holder.name,
        "accountHolderEmail": holder.email,
        "createdAt": account.created_at.isoformat(),
    }
