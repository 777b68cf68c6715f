"""Canonical in-process types shared by the gateway, planner and reconciler.

Exchange payload aliases never leak past the gateway: everything here uses
one field name per concept.
"""

from dataclasses import dataclass, field

BUY = "BUY"
SELL = "SELL"


def opposite(side: str) -> str:
    return SELL if side == BUY else BUY


@dataclass
class OrderRequest:
    symbol: str  # venue symbol, e.g. BTCUSDT
    side: str
    type: str  # MARKET, TAKE_PROFIT_MARKET, STOP_MARKET
    quantity: str | None = None
    stop_price: str | None = None
    reduce_only: bool = False
    close_position: bool = False
    position_side: str | None = None
    working_type: str | None = None


@dataclass
class LivePosition:
    account: str
    symbol: str
    signed_size: float
    leverage: float = 0.0
    entry_price: float = 0.0
    update_time: int | None = None  # epoch ms
    side: str = "BOTH"  # BOTH, LONG, SHORT
    take_profit_price: float | None = None
    stop_loss_price: float | None = None

    @property
    def is_open(self) -> bool:
        return abs(self.signed_size) > 1e-8


@dataclass
class RestingOrder:
    symbol: str
    type: str
    side: str | None = None
    stop_price: float | None = None
    price: float | None = None
    position_side: str = "BOTH"
    order_id: int | None = None


@dataclass
class AccountState:
    account: str
    available_balance: float
    total_wallet_balance: float = 0.0
    positions: list[LivePosition] = field(default_factory=list)
    # Leverage is configured per symbol even while flat
    leverage_by_symbol: dict[str, float] = field(default_factory=dict)
    fetched_at: float | None = None

    def position(self, symbol: str) -> LivePosition | None:
        for pos in self.positions:
            if pos.symbol == symbol:
                return pos
        return None

    def leverage(self, symbol: str) -> float:
        pos = self.position(symbol)
        if pos is not None and pos.leverage:
            return pos.leverage
        return self.leverage_by_symbol.get(symbol, 0.0)

    @property
    def has_open_position(self) -> bool:
        return any(p.is_open for p in self.positions)


@dataclass
class LegInstruction:
    account: str
    side: str
    quantity: float
    leverage: float
    take_profit_price: float | None = None
    stop_loss_price: float | None = None


@dataclass
class LegOutcome:
    """What happened to one leg of an opening or closing attempt."""

    account: str
    success: bool
    side: str | None = None
    quantity: float = 0.0
    order_id: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    volume: float = 0.0

    def as_dict(self) -> dict:
        return {
            "account": self.account,
            "success": self.success,
            "side": self.side,
            "quantity": self.quantity,
            "order_id": self.order_id,
            "error": self.error,
            "warnings": list(self.warnings),
            "volume": self.volume,
        }


@dataclass
class DerivedTradeState:
    is_fully_open: bool
    is_fully_flat: bool
    any_leg_open: bool
