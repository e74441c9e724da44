from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

# Comparison slack for amounts that went through float on the client side
MONEY_TOLERANCE = CENT


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a JSON/DB value to a 2-place Decimal.

    None and "" count as zero. Raises ValueError for anything that is not a
    finite number; callers turn that into a ValidationError.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def optional_money(value: Any, field: str = "amount") -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_money(value, field)


def money_to_json(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(value)
