"""Hedge order orchestration: opening and closing attempts.

An attempt fans out one task per leg and waits for all of them; there is
no cross-account atomicity, so a leg that went through is never unwound
when another fails. The failure is reported, the order status is left
alone, and the operator resolves the leftover exposure.

Opening and closing attempts on the same order are mutually exclusive.
Attempts on different orders run fully in parallel.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field

from hedgedesk.engine.errors import (
    AccountStateUnavailable,
    AttemptInProgress,
    CredentialsMissing,
    HedgeError,
    InvalidInput,
    LegSubmissionFailed,
    PartialFailure,
    PriceUnavailable,
)
from hedgedesk.engine.planner import ParticipantCapacity, PlannerConfig, plan_legs
from hedgedesk.engine.precision import format_price, format_quantity
from hedgedesk.engine.reconciler import DEFAULT_WINDOW_MS, reconcile
from hedgedesk.engine.types import (
    BUY,
    SELL,
    DerivedTradeState,
    LegInstruction,
    LegOutcome,
    OrderRequest,
    opposite,
)
from hedgedesk.utils.constants import MARKET_SYMBOL_MAP

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    order_id: str
    action: str  # open / close
    status: str  # order status after the attempt
    price: float | None = None
    legs: list[LegOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [f"{leg.account}: {w}" for leg in self.legs for w in leg.warnings]

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "action": self.action,
            "status": self.status,
            "price": self.price,
            "legs": [leg.as_dict() for leg in self.legs],
            "warnings": self.warnings,
        }


def close_side(position) -> str:
    """Side of the reduce-only order that flattens ``position``."""
    if position.side == "LONG":
        return SELL
    if position.side == "SHORT":
        return BUY
    return SELL if position.signed_size > 0 else BUY


class HedgeOrchestrator:
    def __init__(
        self,
        registry,
        orders,
        gateway,
        live_state,
        prices,
        rng: random.Random | None = None,
        planner_config: PlannerConfig | None = None,
        window_ms: int = DEFAULT_WINDOW_MS,
    ):
        self.registry = registry
        self.orders = orders
        self.gateway = gateway
        self.live_state = live_state
        self.prices = prices
        self.rng = rng or random.Random()
        self.planner_config = planner_config or PlannerConfig()
        self.window_ms = window_ms
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_guard = asyncio.Lock()

    async def _get_lock(self, order_id: str) -> asyncio.Lock:
        async with self._locks_guard:
            lock = self._locks.get(order_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[order_id] = lock
            return lock

    def in_progress(self, order_id: str) -> bool:
        lock = self._locks.get(order_id)
        return bool(lock and lock.locked())

    def derived_state(self, order) -> DerivedTradeState:
        return reconcile(order, self.live_state.positions_for(order), self.window_ms)

    def _load(self, order_id: str):
        order = self.orders.get(order_id)
        if order is None:
            raise InvalidInput(f"Order {order_id} not found")
        return order

    # --- opening ---

    async def open_order(self, order_id: str) -> AttemptResult:
        lock = await self._get_lock(order_id)
        if lock.locked():
            raise AttemptInProgress(order_id)
        async with lock:
            return await self._open_once(order_id)

    async def _open_once(self, order_id: str) -> AttemptResult:
        order = self._load(order_id)
        symbol = order.symbol
        if order.status == "open":
            raise InvalidInput(f"Order {order_id} is already open")
        if not order.amount or order.amount <= 0:
            raise InvalidInput("Amount must be greater than 0")
        if symbol not in MARKET_SYMBOL_MAP:
            raise InvalidInput(f"Unsupported symbol {symbol}")
        price = self.prices.get(symbol)
        if not price:
            raise PriceUnavailable(symbol)

        for name in order.participants:
            if not self.registry.has_credentials(name):
                raise CredentialsMissing(name)

        try:
            legs = await self._plan(order, price)
        except HedgeError as e:
            self.orders.log_attempt(order_id, "open", "rejected", str(e), price=price)
            logger.info(f"[{order_id}] open rejected: {e}")
            raise

        side = legs[0].side
        logger.info(
            f"[{order_id}] opening {symbol} {order.amount} @ {price}: "
            + ", ".join(f"{leg.account} {leg.side} {leg.quantity}" for leg in legs)
        )

        results = await asyncio.gather(
            *(self._open_leg(order, leg, price) for leg in legs), return_exceptions=True
        )
        outcomes = [
            self._unexpected(leg.account, leg.side, r) if isinstance(r, BaseException) else r
            for leg, r in zip(legs, results)
        ]
        succeeded = [o.account for o in outcomes if o.success]
        failures = [LegSubmissionFailed(o.account, o.error or "unknown error") for o in outcomes if not o.success]
        leg_dicts = [o.as_dict() for o in outcomes]

        if not failures:
            updated = self.orders.set_status(order_id, "open")
            self.orders.log_attempt(order_id, "open", "success", f"primary {side}", leg_dicts, price)
            logger.info(f"[{order_id}] open: all {len(outcomes)} legs filled")
            return AttemptResult(order_id, "open", updated.status, price, outcomes)

        self.orders.log_attempt(
            order_id, "open", "partial" if succeeded else "failed",
            "; ".join(str(f) for f in failures), leg_dicts, price,
        )
        if succeeded:
            logger.error(f"[{order_id}] open partially failed, legs left open on {succeeded}")
            raise PartialFailure("open", failures, succeeded)
        logger.warning(f"[{order_id}] open failed on every leg")
        raise LegSubmissionFailed(
            ", ".join(f.account for f in failures),
            "; ".join(f.reason for f in failures),
        )

    async def _plan(self, order, price: float) -> list[LegInstruction]:
        venue_symbol = MARKET_SYMBOL_MAP[order.symbol]
        states = await asyncio.gather(*(self.live_state.refresh(n) for n in order.participants))
        for name, state in zip(order.participants, states):
            if state is None:
                raise AccountStateUnavailable(name)

        derived = self.derived_state(order)
        if derived.any_leg_open:
            raise InvalidInput(
                f"Order {order.id} still has open positions on its accounts, close them first"
            )

        capacities = [
            ParticipantCapacity.from_balance(
                state.account, state.available_balance, state.leverage(venue_symbol), price
            )
            for state in states
        ]
        primary, *hedges = capacities
        return plan_legs(order, primary, hedges, price, rng=self.rng, config=self.planner_config)

    async def _open_leg(self, order, leg: LegInstruction, price: float) -> LegOutcome:
        symbol = order.symbol
        venue_symbol = MARKET_SYMBOL_MAP[symbol]
        outcome = LegOutcome(account=leg.account, success=False, side=leg.side, quantity=leg.quantity)

        entry = OrderRequest(
            symbol=venue_symbol,
            side=leg.side,
            type="MARKET",
            quantity=format_quantity(symbol, leg.quantity),
        )
        try:
            outcome.order_id = await self.gateway.submit_order(leg.account, entry)
            outcome.success = True
        except LegSubmissionFailed as e:
            outcome.error = e.reason

        if outcome.success:
            exit_side = opposite(leg.side)
            for label, order_type, trigger in (
                ("take-profit", "TAKE_PROFIT_MARKET", leg.take_profit_price),
                ("stop-loss", "STOP_MARKET", leg.stop_loss_price),
            ):
                if trigger is None:
                    outcome.warnings.append(f"{label} skipped, trigger price not positive")
                    continue
                protective = OrderRequest(
                    symbol=venue_symbol,
                    side=exit_side,
                    type=order_type,
                    stop_price=format_price(symbol, trigger),
                    close_position=True,
                    working_type="MARK_PRICE",
                )
                try:
                    await self.gateway.submit_order(leg.account, protective)
                except LegSubmissionFailed as e:
                    logger.warning(f"[{order.id}] {label} order failed on {leg.account}: {e.reason}")
                    outcome.warnings.append(f"{label} order failed: {e.reason}")

        await self.live_state.refresh(leg.account)

        if outcome.success:
            outcome.volume = leg.quantity * price
            self.registry.record_leg(leg.account, outcome.volume)
        return outcome

    # --- closing ---

    async def close_order(self, order_id: str) -> AttemptResult:
        lock = await self._get_lock(order_id)
        if lock.locked():
            raise AttemptInProgress(order_id)
        async with lock:
            return await self._close_once(order_id)

    async def _close_once(self, order_id: str) -> AttemptResult:
        order = self._load(order_id)
        if order.status == "closed":
            raise InvalidInput(f"Order {order_id} is already closed")
        if order.symbol not in MARKET_SYMBOL_MAP:
            raise InvalidInput(f"Unsupported symbol {order.symbol}")
        price = self.prices.get(order.symbol)
        participants = order.participants

        results = await asyncio.gather(
            *(self._close_leg(order, name, price) for name in participants), return_exceptions=True
        )
        outcomes = []
        failures = []
        for name, r in zip(participants, results):
            if isinstance(r, LegSubmissionFailed):
                failures.append(r)
                outcomes.append(LegOutcome(account=name, success=False, error=r.reason))
            elif isinstance(r, BaseException):
                outcome = self._unexpected(name, None, r)
                failures.append(LegSubmissionFailed(name, outcome.error))
                outcomes.append(outcome)
            else:
                outcomes.append(r)
        leg_dicts = [o.as_dict() for o in outcomes]

        if failures:
            succeeded = [o.account for o in outcomes if o.success]
            self.orders.log_attempt(
                order_id, "close", "failed", "; ".join(str(f) for f in failures), leg_dicts, price
            )
            logger.error(f"[{order_id}] close failed on {[f.account for f in failures]}")
            raise PartialFailure("close", failures, succeeded)

        status = self.orders.set_status(order_id, "closed").status
        self.orders.log_attempt(order_id, "close", "success", None, leg_dicts, price)
        logger.info(f"[{order_id}] close complete, status {status}")
        return AttemptResult(order_id, "close", status, price, outcomes)

    async def _close_leg(self, order, account: str, price: float | None) -> LegOutcome:
        symbol = order.symbol
        venue_symbol = MARKET_SYMBOL_MAP[symbol]
        state = await self.gateway.fetch_account_state(account)
        if state is None:
            raise LegSubmissionFailed(account, "account state unavailable")

        position = state.position(venue_symbol)
        if position is None or not position.is_open:
            return LegOutcome(account=account, success=True)

        size = abs(position.signed_size)
        side = close_side(position)
        outcome = LegOutcome(account=account, success=False, side=side, quantity=size)
        request = OrderRequest(
            symbol=venue_symbol,
            side=side,
            type="MARKET",
            quantity=format_quantity(symbol, size),
            reduce_only=True,
            position_side=position.side,
        )
        outcome.order_id = await self.gateway.submit_order(account, request)
        outcome.success = True

        try:
            await self.gateway.cancel_all_open_orders(account, venue_symbol)
        except LegSubmissionFailed as e:
            logger.warning(f"[{order.id}] {account}: {e.reason}")
            outcome.warnings.append(e.reason)

        await self.live_state.refresh(account)

        outcome.volume = size * (price or position.entry_price)
        self.registry.record_leg(account, outcome.volume)
        return outcome

    def _unexpected(self, account: str, side: str | None, exc: BaseException) -> LegOutcome:
        logger.error(f"{account}: unexpected leg error: {exc}", exc_info=exc)
        return LegOutcome(account=account, success=False, side=side, error=str(exc) or type(exc).__name__)
