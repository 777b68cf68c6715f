"""Latest known account state per account.

Refreshed on a schedule and right after every leg; a failed refresh keeps
the previous snapshot so a transient venue error never makes a live
position look flat.
"""

import asyncio
import logging
from dataclasses import replace

from hedgedesk.engine.types import AccountState, LivePosition, RestingOrder
from hedgedesk.utils.constants import MARKET_SYMBOL_MAP

logger = logging.getLogger(__name__)


def attach_protection_prices(
    positions: list[LivePosition], orders: list[RestingOrder]
) -> list[LivePosition]:
    """Copy resting take-profit/stop-loss trigger prices onto positions.

    The first ``TAKE_PROFIT*`` and the first ``STOP*`` order for the same
    symbol and position side win. Hedge-mode orders also match ``BOTH``.
    """
    if not positions or not orders:
        return positions

    by_key: dict[tuple[str, str], list[RestingOrder]] = {}
    for order in orders:
        by_key.setdefault((order.symbol, order.position_side), []).append(order)
        if order.position_side != "BOTH":
            by_key.setdefault((order.symbol, "BOTH"), []).append(order)

    result = []
    for pos in positions:
        tp = sl = None
        for order in by_key.get((pos.symbol, pos.side), []):
            price = order.stop_price or order.price
            if not price:
                continue
            if tp is None and "TAKE_PROFIT" in order.type:
                tp = price
            elif sl is None and "STOP" in order.type:
                sl = price
        result.append(replace(
            pos,
            take_profit_price=tp if tp is not None else pos.take_profit_price,
            stop_loss_price=sl if sl is not None else pos.stop_loss_price,
        ))
    return result


class LiveStateCache:
    def __init__(self, gateway):
        self.gateway = gateway
        self._states: dict[str, AccountState] = {}

    def get(self, account: str) -> AccountState | None:
        return self._states.get(account)

    def states(self) -> dict[str, AccountState]:
        return dict(self._states)

    def forget(self, account: str):
        self._states.pop(account, None)

    async def refresh(self, account: str) -> AccountState | None:
        """Fetch a fresh snapshot; returns the snapshot now held for the account."""
        state = await self.gateway.fetch_account_state(account)
        if state is None:
            return self._states.get(account)

        symbols = sorted({p.symbol for p in state.positions})
        if symbols:
            order_lists = await asyncio.gather(
                *(self.gateway.list_open_orders(account, s) for s in symbols)
            )
            resting = [o for orders in order_lists for o in orders]
            state.positions = attach_protection_prices(state.positions, resting)

        self._states[account] = state
        return state

    async def refresh_all(self, accounts: list[str]):
        if not accounts:
            return
        await asyncio.gather(*(self.refresh(name) for name in accounts))
        logger.debug(f"Refreshed account state for {len(accounts)} accounts")

    def positions_for(self, order) -> dict[str, LivePosition | None]:
        """Each participant's position in the order's symbol.

        Participants without any snapshot are left out; a snapshot without
        a position maps to ``None`` (known flat).
        """
        symbol = MARKET_SYMBOL_MAP.get(order.symbol, order.symbol)
        result = {}
        for name in order.participants:
            state = self._states.get(name)
            if state is not None:
                result[name] = state.position(symbol)
        return result
