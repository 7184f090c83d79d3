"""
Monetary Amount Handling

Single unit of account with two decimal places. NEVER uses float for stored
values: every amount entering the ledger is parsed into a Decimal here.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any

from .errors import InvalidAmount

# High precision for intermediate calculations
getcontext().prec = 28

PRECISION = 2
QUANTUM = Decimal('0.1') ** PRECISION
ZERO = Decimal('0').quantize(QUANTUM)


def quantize(amount: Decimal) -> Decimal:
    """Round to the ledger's precision"""
    return amount.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """
    Parse a caller-supplied amount into a positive Decimal.

    Accepts Decimal, int, float and numeric strings. Rejects booleans,
    non-numeric input, NaN/infinity, amounts with more precision than the
    ledger keeps, and anything not strictly positive.

    Raises:
        InvalidAmount: if the value is not a valid positive amount
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount("Amount must be a number")

    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        else:
            amount = Decimal(value if isinstance(value, (Decimal, int)) else str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"Amount must be a number, got {value!r}")

    if not amount.is_finite():
        raise InvalidAmount("Amount must be finite")

    if amount <= 0:
        raise InvalidAmount("Amount must be greater than zero")

    try:
        rounded = quantize(amount)
    except InvalidOperation:
        raise InvalidAmount("Amount is too large")
    if rounded != amount:
        raise InvalidAmount(f"Amount supports at most {PRECISION} decimal places")

    return rounded


def format_amount(amount: Decimal) -> str:
    """Format for display: no trailing zeros on whole amounts"""
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal('1')))
    return str(quantize(amount))
