"""Draft generation for batch and random hedge orders."""

import logging
import random

from hedgedesk.engine.errors import InvalidInput
from hedgedesk.engine.precision import truncate_quantity
from hedgedesk.engine.rotation import RotationConfig, generate_groups
from hedgedesk.engine.types import AccountState

logger = logging.getLogger(__name__)

AMOUNT_JITTER = 0.2
PROTECTION_JITTER = 0.3
PROTECTION_MIN = 50
PROTECTION_MAX = 95
RANDOM_ORDER_PROTECTION_BASE = 80


def jitter(base: float, spread: float, rng: random.Random) -> float:
    """Uniform draw from ``[base * (1 - spread), base * (1 + spread)]``."""
    return rng.uniform(base * (1 - spread), base * (1 + spread))


def jitter_protection(base: float, rng: random.Random) -> int:
    value = round(jitter(base, PROTECTION_JITTER, rng))
    return max(PROTECTION_MIN, min(value, PROTECTION_MAX))


def jitter_amount(symbol: str, base: float, rng: random.Random) -> float:
    amount = truncate_quantity(symbol, jitter(base, AMOUNT_JITTER, rng))
    return amount if amount > 0 else truncate_quantity(symbol, base)


def build_batch_drafts(
    accounts: list[str],
    symbol: str,
    amount: float,
    take_profit_pct: float,
    stop_loss_pct: float,
    rng: random.Random | None = None,
    rotation: RotationConfig | None = None,
) -> list[dict]:
    """One draft per rotation group, numbered in emission order from 1."""
    rng = rng or random.Random()
    groups, state = generate_groups(accounts, rng=rng, config=rotation)
    drafts = []
    for index, group in enumerate(groups, start=1):
        drafts.append({
            "symbol": symbol,
            "primary_account": group.primary,
            "hedge_account": group.hedges[0],
            "hedge_account_2": group.hedges[1] if len(group.hedges) > 1 else None,
            "amount": jitter_amount(symbol, amount, rng),
            "take_profit_pct": jitter_protection(take_profit_pct, rng),
            "stop_loss_pct": jitter_protection(stop_loss_pct, rng),
            "batch_index": index,
        })
    logger.info(f"Batch of {len(drafts)} drafts for {symbol}, weight spread {state.spread():.1f}")
    return drafts


def pick_random_group(states: list[AccountState]) -> tuple[str, list[str]]:
    """Richest idle account as primary, the two poorest idle accounts as hedges."""
    idle = [s for s in states if not s.has_open_position]
    if len(idle) < 3:
        raise InvalidInput(f"Need at least 3 accounts without open positions, found {len(idle)}")
    idle.sort(key=lambda s: s.available_balance, reverse=True)
    return idle[0].account, [idle[-1].account, idle[-2].account]


def build_random_draft(
    states: list[AccountState],
    symbol: str,
    amount: float,
    rng: random.Random | None = None,
) -> dict:
    rng = rng or random.Random()
    primary, hedges = pick_random_group(states)
    return {
        "symbol": symbol,
        "primary_account": primary,
        "hedge_account": hedges[0],
        "hedge_account_2": hedges[1],
        "amount": truncate_quantity(symbol, amount),
        "take_profit_pct": jitter_protection(RANDOM_ORDER_PROTECTION_BASE, rng),
        "stop_loss_pct": jitter_protection(RANDOM_ORDER_PROTECTION_BASE, rng),
    }
