"""
Money Utilities - Safe Decimal operations for monetary values.

Amounts coming from the browser or from gateway payloads are converted once,
at the boundary, and carried as Decimal afterwards.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

MONEY_PRECISION = Decimal("0.01")

Number = Union[str, int, float, Decimal, None]


def to_decimal(value: Number) -> Decimal:
    """Like parse_amount, but missing or unparseable input becomes Decimal("0")."""
    if isinstance(value, Decimal):
        return value
    parsed = parse_amount(value)
    return parsed if parsed is not None else Decimal("0")


def parse_amount(value: Number) -> Decimal | None:
    """
    Parse a boundary value; None for missing, unparseable or non-finite input.
    """
    if value is None or value == "":
        return None
    try:
        if isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def from_minor_units(value: Number) -> Decimal:
    """Convert minor units (cents/halere) to a decimal amount."""
    return round_money(to_decimal(value) / Decimal(100))


def round_money(value: Number) -> Decimal:
    """Round monetary value to two decimal places."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def to_float(value: Number) -> float:
    """
    Convert Decimal to float for JSON serialization or external APIs.

    Use only at API boundaries, not for internal calculations.
    """
    return float(to_decimal(value))


def format_amount(value: Number) -> str:
    """Plain two-decimal string, the format the Billing Backend expects."""
    return f"{round_money(value):.2f}"
