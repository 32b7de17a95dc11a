# Overview: Fixed-point money helpers (two decimals, half-up).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """
    Convert an int/str/Decimal to Decimal without going through float.

    Floats are converted via repr() so 19.99 stays 19.99.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not a monetary value: {value!r}")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to 2 decimals, half-up."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def percent_of(amount, percentage) -> Decimal:
    """amount x percentage / 100, rounded half-up to cents."""
    return round_money(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(round_money(value))
