"""
Decimal helpers shared by the calculator, aggregator and ledger.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def parse_decimal(value: Optional[object]) -> Optional[Decimal]:
    """
    Safely parse a value into a Decimal.

    Args:
        value: Input value that may represent a decimal number.

    Returns:
        Decimal value or None if parsing fails or value is blank.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, float) and not math.isfinite(value):
        return None

    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None

    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def quantize_currency(value: Decimal) -> Decimal:
    """Round monetary values to cents."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_currency(value: Optional[Decimal], default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Quantize to cents, tolerating missing or unrepresentable values.

    Returns ``default`` when ``value`` is None or too large to carry two
    decimal places within the decimal context precision.
    """
    if value is None:
        return default
    try:
        return quantize_currency(value)
    except InvalidOperation:
        return default
