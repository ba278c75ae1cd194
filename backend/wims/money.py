from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def D(x) -> Decimal:
    """Coerce to Decimal via str() so floats do not leak binary noise."""
    if isinstance(x, Decimal):
        return x
    if x is None:
        return Decimal("0")
    if isinstance(x, bool):
        raise ValueError("boolean is not a monetary amount")
    try:
        return Decimal(str(x).strip())
    except InvalidOperation:
        raise ValueError(f"invalid amount: {x!r}")


def money2(x) -> Decimal:
    """Round half-up to 2 decimal places."""
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(x) -> str | None:
    """Wire format for amounts: fixed 2-dp string."""
    if x is None:
        return None
    return str(money2(x))
