"""Last-trade prices for the supported symbols.

Prices come from the venue's public ticker endpoint, polled on a schedule.
"""

import logging
import time

from hedgedesk.services.aster_client import AsterAPIError
from hedgedesk.utils.constants import MARKET_SYMBOL_MAP

logger = logging.getLogger(__name__)


class PriceBook:
    def __init__(self):
        self._prices: dict[str, float] = {}
        self.updated_at: float | None = None

    def get(self, symbol: str) -> float | None:
        """Price for a hedge symbol (``BTC``); ``None`` if never seen."""
        return self._prices.get(symbol)

    def update(self, symbol: str, price: float):
        if price and price > 0:
            self._prices[symbol] = float(price)
            self.updated_at = time.time()

    def snapshot(self) -> dict[str, float]:
        return dict(self._prices)


async def refresh_prices(book: PriceBook, client) -> int:
    """Load ticker prices into ``book``; returns how many symbols updated."""
    try:
        tickers = await client.ticker_prices()
    except AsterAPIError as e:
        logger.warning(f"Ticker refresh failed: {e}")
        return 0

    updated = 0
    for symbol, venue_symbol in MARKET_SYMBOL_MAP.items():
        price = tickers.get(venue_symbol)
        if price:
            book.update(symbol, price)
            updated += 1
    return updated
