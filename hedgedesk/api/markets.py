"""Markets API: supported symbols with their latest prices."""

from fastapi import APIRouter, Depends

from hedgedesk.api.deps import get_current_operator
from hedgedesk.engine.runtime import Runtime, get_runtime
from hedgedesk.utils.constants import MARKET_SYMBOL_MAP, SYMBOL_PRECISION

router = APIRouter(prefix="/api/markets", tags=["markets"], dependencies=[Depends(get_current_operator)])


@router.get("")
def list_markets(runtime: Runtime = Depends(get_runtime)):
    return [
        {
            "symbol": symbol,
            "venue_symbol": venue_symbol,
            "price": runtime.prices.get(symbol),
            "quantity_decimals": SYMBOL_PRECISION[symbol]["quantity"],
            "price_decimals": SYMBOL_PRECISION[symbol]["price"],
        }
        for symbol, venue_symbol in MARKET_SYMBOL_MAP.items()
    ]
