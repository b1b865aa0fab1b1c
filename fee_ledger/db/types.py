"""
Module: fee_ledger.db.types
Responsibility: Annotated column types and helpers for monetary values.
    Centralizes precision, rounding, coercion and display formatting so every
    model and service treats money identically.
Architecture position: Ledger > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

No floats anywhere in the ledger: amounts are Decimal with explicit precision.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String


# Monetary amount: 38 digits total, 9 decimal places
STORED_DIGITS = 38
STORED_DECIMAL_PLACES = 9
Money = Annotated[Decimal, Numeric(STORED_DIGITS, STORED_DECIMAL_PLACES)]

# Short identifier strings (references, enum values)
ShortCode = Annotated[str, String(50)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce a caller-supplied amount to Decimal.

    Floats are converted through ``str`` so that ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.

    Raises:
        InvalidOperation: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidOperation(f"Not a monetary amount: {value!r}")
    elif isinstance(value, (int, str)):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise InvalidOperation(f"Not a monetary amount: {value!r}")
    if not result.is_finite():
        raise InvalidOperation(f"Not a monetary amount: {value!r}")
    return result


def exceeds_money_precision(value: Decimal) -> bool:
    """
    True when ``value`` would change on the way into a ``Money`` column.

    Trailing zeros do not count, so ``Decimal("1.50000000000")`` fits while
    ``Decimal("0.0000000001")`` does not.
    """
    _, digits, exponent = value.as_tuple()
    if not any(digits):
        return False
    significant = "".join(map(str, digits)).rstrip("0")
    scale = -(exponent + len(digits) - len(significant))
    return (
        scale > STORED_DECIMAL_PLACES
        or value.adjusted() >= STORED_DIGITS - STORED_DECIMAL_PLACES
    )


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (default 2, half-up)."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def format_currency(amount: Decimal | int, symbol: str = "₦") -> str:
    """
    Format an amount for messages, e.g. ``₦10,000.00`` or ``-₦250.50``.
    """
    value = round_money(Decimal(amount))
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
