"""Shared constants: supported symbols, venue symbols and precision."""

SYMBOL_OPTIONS = ["BTC", "ETH", "SOL"]

# Hedge symbol -> venue futures symbol
MARKET_SYMBOL_MAP: dict[str, str] = {
    "BTC": "BTCUSDT",
    "ETH": "ETHUSDT",
    "SOL": "SOLUSDT",
}

# Decimal places accepted by the venue for order quantity and trigger price
SYMBOL_PRECISION: dict[str, dict[str, int]] = {
    "BTC": {"quantity": 3, "price": 1},
    "ETH": {"quantity": 3, "price": 2},
    "SOL": {"quantity": 2, "price": 2},
}

ORDER_STATUSES = ("draft", "open", "closed")

MIN_PROTECTION_PCT = 20.0
MAX_HEDGE_ACCOUNTS = 2
