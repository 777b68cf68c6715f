"""Leg sizing and planning for hedge trades.

Pure computation: turns a hedge order plus each participant's margin
capacity into concrete per-leg instructions. The only non-determinism is
the entry-side coin flip and the two-hedge split ratio, both drawn from an
injectable ``random.Random``-compatible source.
"""

import logging
import random
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_DOWN, Decimal

from hedgedesk.engine.errors import (
    InsufficientMargin,
    InvalidInput,
    LeverageMismatch,
    PriceUnavailable,
)
from hedgedesk.engine.precision import quantity_decimals, truncate_price, truncate_quantity
from hedgedesk.engine.types import BUY, SELL, LegInstruction, opposite
from hedgedesk.utils.constants import MAX_HEDGE_ACCOUNTS

logger = logging.getLogger(__name__)

_default_rng = random.Random()


@dataclass
class PlannerConfig:
    margin_safety_factor: float = 0.9
    hedge_split_min: float = 0.30
    hedge_split_max: float = 0.60


@dataclass
class ParticipantCapacity:
    """Margin capacity of one account for the order's symbol."""

    account: str
    available_balance: float
    leverage: float
    can_open: float = 0.0

    @classmethod
    def from_balance(cls, account: str, available_balance: float, leverage: float, price: float) -> "ParticipantCapacity":
        can_open = available_balance * leverage / price if price and leverage else 0.0
        return cls(
            account=account,
            available_balance=available_balance,
            leverage=leverage,
            can_open=max(can_open, 0.0),
        )


def max_tradable_size(
    primary: ParticipantCapacity,
    hedges: list[ParticipantCapacity],
    safety_factor: float = 0.9,
) -> float:
    """Ceiling the order amount must stay below."""
    return min(primary.can_open, sum(h.can_open for h in hedges)) * safety_factor


def protection_prices(
    symbol: str,
    side: str,
    price: float,
    take_profit_pct: float,
    stop_loss_pct: float,
    leverage: float,
) -> tuple[float | None, float | None]:
    """Take-profit and stop-loss trigger prices for one leg.

    Percentages are of margin, so the price move is divided by leverage.
    A non-positive trigger is returned as ``None`` (no protective order).
    """
    # Decimal keeps clean prices like 50000 * 0.94 from truncating a tick low
    effective = Decimal(str(leverage or 1))
    base = Decimal(str(price))
    tp_move = Decimal(str(take_profit_pct)) / 100 / effective
    sl_move = Decimal(str(stop_loss_pct)) / 100 / effective
    if side == BUY:
        tp_raw = base * (1 + tp_move)
        sl_raw = base * (1 - sl_move)
    else:
        tp_raw = base * (1 - tp_move)
        sl_raw = base * (1 + sl_move)

    def _clean(raw: Decimal) -> float | None:
        if raw <= 0:
            return None
        value = truncate_price(symbol, float(raw))
        return value if value > 0 else None

    return _clean(tp_raw), _clean(sl_raw)


def split_hedge_quantity(
    symbol: str,
    amount: float,
    ratio: float,
    min_ratio: float = 0.30,
    max_ratio: float = 0.60,
) -> tuple[float, float]:
    """Split ``amount`` into (first, remainder) at the symbol's quantity precision.

    The first share is truncated to the quantity tick, then held inside
    ``[min_ratio * amount, max_ratio * amount]`` on whole ticks.
    """
    tick = Decimal(1).scaleb(-quantity_decimals(symbol))
    total = Decimal(str(truncate_quantity(symbol, amount)))
    low = (total * Decimal(str(min_ratio))).quantize(tick, rounding=ROUND_CEILING)
    high = (total * Decimal(str(max_ratio))).quantize(tick, rounding=ROUND_DOWN)
    if low > high or low <= 0:
        raise InvalidInput(f"Amount {total} is too small to split across two hedge accounts")
    first = (total * Decimal(str(ratio))).quantize(tick, rounding=ROUND_DOWN)
    first = min(max(first, low), high)
    return float(first), float(total - first)


def plan_legs(
    order,
    primary: ParticipantCapacity,
    hedges: list[ParticipantCapacity],
    price: float | None,
    rng: random.Random | None = None,
    config: PlannerConfig | None = None,
) -> list[LegInstruction]:
    """Validate an order against live capacity and expand it into legs.

    The primary leg comes first, followed by hedge legs in the order's
    hedge-account order. Raises the first failed check, in the order:
    leverage consistency, total ceiling, per-hedge ceilings.
    """
    rng = rng or _default_rng
    config = config or PlannerConfig()
    symbol = order.symbol

    if not price or price <= 0:
        raise PriceUnavailable(symbol)
    if not hedges or len(hedges) > MAX_HEDGE_ACCOUNTS:
        raise InvalidInput(f"An order needs 1 to {MAX_HEDGE_ACCOUNTS} hedge accounts")
    names = [primary.account] + [h.account for h in hedges]
    if len(set(names)) != len(names):
        raise InvalidInput("Primary and hedge accounts must all be different")

    amount = truncate_quantity(symbol, order.amount)
    if amount <= 0:
        raise InvalidInput("Amount must be greater than 0")

    leverages = {p.account: p.leverage for p in [primary, *hedges]}
    if len(set(leverages.values())) > 1:
        raise LeverageMismatch(leverages)

    ceiling = max_tradable_size(primary, hedges, config.margin_safety_factor)
    if amount >= ceiling:
        logger.info(f"[{order.id}] amount {amount} rejected, ceiling {ceiling:.6f}")
        raise InsufficientMargin(ceiling)

    if len(hedges) == 2:
        ratio = rng.uniform(config.hedge_split_min, config.hedge_split_max)
        hedge_quantities = list(split_hedge_quantity(
            symbol, amount, ratio, config.hedge_split_min, config.hedge_split_max
        ))
    else:
        hedge_quantities = [amount]

    for hedge, quantity in zip(hedges, hedge_quantities):
        hedge_ceiling = hedge.can_open * config.margin_safety_factor
        if quantity >= hedge_ceiling:
            raise InsufficientMargin(hedge_ceiling, account=hedge.account)

    primary_side = BUY if rng.random() < 0.5 else SELL
    hedge_side = opposite(primary_side)

    legs = []
    sized = [(primary, primary_side, amount)] + [
        (h, hedge_side, q) for h, q in zip(hedges, hedge_quantities)
    ]
    for participant, side, quantity in sized:
        tp, sl = protection_prices(
            symbol, side, price, order.take_profit_pct, order.stop_loss_pct, participant.leverage
        )
        legs.append(LegInstruction(
            account=participant.account,
            side=side,
            quantity=quantity,
            leverage=participant.leverage,
            take_profit_price=tp,
            stop_loss_price=sl,
        ))
    return legs
