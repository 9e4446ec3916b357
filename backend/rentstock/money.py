# Overview: Decimal helpers for monetary amounts (2 decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value, *, field: str = "amount") -> Decimal:
    """Convert int/float/str/Decimal to a Decimal rounded to cents."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        # str() first so floats like 0.1 don't carry binary noise
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_json(value) -> float | None:
    if value is None:
        return None
    return float(value)
