"""Quantity/price precision helpers.

The venue rejects orders carrying more decimals than a symbol allows, so
values are truncated toward zero (never rounded up) before submission.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from hedgedesk.utils.constants import SYMBOL_PRECISION


def _quantum(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


def truncate(value: float, decimals: int) -> float:
    """Drop digits beyond ``decimals`` places, toward zero."""
    return float(Decimal(str(value)).quantize(_quantum(decimals), rounding=ROUND_DOWN))


def round_half_up(value: float, decimals: int) -> float:
    return float(Decimal(str(value)).quantize(_quantum(decimals), rounding=ROUND_HALF_UP))


def format_decimal(value: float) -> str:
    """Render without exponent or trailing zeros: 0.010 -> '0.01', 53000.0 -> '53000'."""
    text = format(Decimal(str(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def quantity_decimals(symbol: str) -> int:
    return SYMBOL_PRECISION[symbol]["quantity"]


def price_decimals(symbol: str) -> int:
    return SYMBOL_PRECISION[symbol]["price"]


def truncate_quantity(symbol: str, value: float) -> float:
    return truncate(value, quantity_decimals(symbol))


def truncate_price(symbol: str, value: float) -> float:
    return truncate(value, price_decimals(symbol))


def format_quantity(symbol: str, value: float) -> str:
    return format_decimal(truncate_quantity(symbol, value))


def format_price(symbol: str, value: float) -> str:
    return format_decimal(truncate_price(symbol, value))
