"""
Module: erp_kernel.db.types
Responsibility: Annotated column aliases and the single sanctioned rounding
    helper for money and quantities.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and erp_engines.  MUST NOT import from any of those.

Invariants enforced:
    - Money is Decimal, rounded ROUND_HALF_UP to MONEY_DECIMAL_PLACES.
      round_money() is the ONLY rounding function for document amounts.
    - No floats: to_decimal() rejects float input instead of guessing.

Failure modes:
    - ValueError on a non-numeric string or float passed to to_decimal().
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Line quantity
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Percent rate (tax rate, discount percent)
Percent = Annotated[Decimal, Numeric(9, 4)]

# Short identifier strings (status, enum values)
ShortCode = Annotated[str, String(50)]

# Free text
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value half-up to ``decimal_places``.

    Args:
        value: The amount to round.
        decimal_places: Places to keep (default 2).
        rounding: Decimal rounding mode (default ROUND_HALF_UP).

    Returns:
        The rounded Decimal.
    """
    quantizer = Decimal(10) ** -decimal_places
    return value.quantize(quantizer, rounding=rounding)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce caller input to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Refusing to coerce {type(value).__name__} to Decimal: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
