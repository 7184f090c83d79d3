"""
Pydantic schemas for API requests
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..accounts import AccountType


# Passed through unconverted; parse_amount rejects booleans and non-numbers
Amount = Any


class DepositRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_number: str = Field(..., alias="accountNumber")
    amount: Amount
    description: Optional[str] = None


class TransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_account_number: str = Field("", alias="fromAccountNumber")
    to_account_number: str = Field("", alias="toAccountNumber")
    amount: Amount
    description: Optional[str] = None


class OpenAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    account_type: AccountType = Field(..., alias="accountType")
    initial_deposit: Optional[Amount] = Field(None, alias="initialDeposit")
