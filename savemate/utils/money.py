"""Decimal helpers for currency amounts"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert user/database input to Decimal without going through binary floats.

    Floats are converted via their shortest repr so 0.1 becomes Decimal("0.1"),
    not Decimal("0.1000000000000000055511151231257827").
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a monetary amount")
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise TypeError(f"Not a monetary amount: {value!r}") from e


def quantize_cents(amount: Decimal) -> Decimal:
    """Round half-up to whole cents"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_cents(amount: Decimal) -> Decimal:
    """Truncate to whole cents (never rounds up, used when splitting a budget)"""
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def has_sub_cent_digits(amount: Decimal) -> bool:
    """True when a finite amount carries digits below the cent, e.g. 10.045"""
    return amount.normalize().as_tuple().exponent < -2
