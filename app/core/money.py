"""Decimal helpers for money and material quantities."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from app.config import settings


TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert floats, ints and strings to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money_tolerance() -> Decimal:
    return to_decimal(settings.MONEY_TOLERANCE)


def format_money(value: Any) -> str:
    return f"{round_money(value):,.2f}"
