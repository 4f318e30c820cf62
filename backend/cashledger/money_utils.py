"""
Decimal helpers for money, quantities and rates.

Money is kept to 2 places, quantities to 4, tax rates to 4 so that several
taxes on one line do not compound rounding error. Everything rounds HALF_UP.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.0001")
RATE_PLACES = Decimal("0.0001")


def to_decimal(value: Any) -> Decimal | None:
    """
    Coerce a JSON-ish number into a finite Decimal.

    Returns None for missing, blank, boolean, non-numeric, NaN or infinite input.
    Floats go through str() so 0.1 stays 0.1.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            return None
    else:
        return None

    if not result.is_finite():
        return None
    return result


def round_money(value: Any) -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        return ZERO.quantize(MONEY_PLACES)
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def round_quantity(value: Any) -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        return ZERO.quantize(QUANTITY_PLACES)
    return amount.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def round_rate(value: Any) -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        return ZERO.quantize(RATE_PLACES)
    return amount.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def money_json(value: Any) -> float | None:
    """Render money for JSON payloads: plain number, 2 places, None passes through."""
    if value is None:
        return None
    return float(round_money(value))


def quantity_json(value: Any) -> float | None:
    if value is None:
        return None
    return float(round_quantity(value))


def rate_json(value: Any) -> float | None:
    if value is None:
        return None
    return float(round_rate(value))
