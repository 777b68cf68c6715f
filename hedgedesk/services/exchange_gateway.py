"""Per-account exchange operations with payload normalization.

The venue sends the same field under a long and a short name depending on
the endpoint (``positionAmt``/``pa``, ``entryPrice``/``ep`` ...). This
module is the only place those aliases are read; everything it returns
uses the canonical types in ``hedgedesk.engine.types``.
"""

import logging
import time
from typing import Any

from hedgedesk.engine.errors import CredentialsMissing, LegSubmissionFailed
from hedgedesk.engine.types import AccountState, LivePosition, OrderRequest, RestingOrder
from hedgedesk.services.aster_client import AsterAPIError, AsterClient

logger = logging.getLogger(__name__)


def _pick(raw: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_side(value: Any) -> str:
    side = str(value or "BOTH").upper()
    return side if side in ("BOTH", "LONG", "SHORT") else "BOTH"


def normalize_position(account: str, raw: dict) -> LivePosition | None:
    symbol = str(_pick(raw, "symbol", "s", default="")).upper()
    if not symbol:
        return None
    update_time = _pick(raw, "updateTime", "u")
    update_time = int(update_time) if update_time not in (None, 0, "0") else None
    return LivePosition(
        account=account,
        symbol=symbol,
        signed_size=_as_float(_pick(raw, "positionAmt", "pa", default="0")),
        leverage=_as_float(raw.get("leverage")),
        entry_price=_as_float(_pick(raw, "entryPrice", "ep")),
        update_time=update_time,
        side=_as_side(_pick(raw, "positionSide", "ps")),
    )


def normalize_resting_order(raw: dict) -> RestingOrder | None:
    symbol = str(_pick(raw, "symbol", "s", default="")).upper()
    if not symbol:
        return None
    order_id = _pick(raw, "orderId", "i")
    return RestingOrder(
        symbol=symbol,
        type=str(_pick(raw, "type", "o", "origType", default="")).upper(),
        side=str(raw["side"]).upper() if raw.get("side") else None,
        stop_price=_as_float(raw.get("stopPrice"), default=None) or None,
        price=_as_float(raw.get("price"), default=None) or None,
        position_side=_as_side(_pick(raw, "positionSide", "ps")),
        order_id=int(order_id) if order_id is not None else None,
    )


def parse_account_state(account: str, payload: dict) -> AccountState:
    """Build an ``AccountState`` from a ``/fapi/v4/account`` response."""
    available = payload.get("availableBalance")
    if available is None:
        # Fall back to the USDT asset row
        for asset in payload.get("assets") or []:
            if str(_pick(asset, "asset", "a", default="")).upper() == "USDT":
                available = asset.get("availableBalance") or _pick(asset, "crossWalletBalance", "cw")
                break

    positions = []
    leverage_by_symbol = {}
    for raw in payload.get("positions") or []:
        pos = normalize_position(account, raw)
        if pos is None:
            continue
        if pos.leverage:
            leverage_by_symbol.setdefault(pos.symbol, pos.leverage)
        if pos.is_open:
            positions.append(pos)

    return AccountState(
        account=account,
        available_balance=_as_float(available),
        total_wallet_balance=_as_float(payload.get("totalWalletBalance")),
        positions=positions,
        leverage_by_symbol=leverage_by_symbol,
        fetched_at=time.time(),
    )


def order_params(request: OrderRequest) -> dict[str, Any]:
    params: dict[str, Any] = {
        "symbol": request.symbol.upper(),
        "side": request.side,
        "type": request.type,
    }
    if request.quantity is not None:
        params["quantity"] = request.quantity
    if request.stop_price is not None:
        params["stopPrice"] = request.stop_price
    if request.reduce_only:
        params["reduceOnly"] = True
    if request.close_position:
        params["closePosition"] = True
    if request.position_side and request.position_side != "BOTH":
        params["positionSide"] = request.position_side
    if request.working_type:
        params["workingType"] = request.working_type
    return params


class ExchangeGateway:
    """Exchange operations keyed by account name."""

    def __init__(self, registry, client: AsterClient):
        self.registry = registry
        self.client = client

    async def submit_order(self, account: str, request: OrderRequest) -> str:
        """Submit one order; returns the venue order id."""
        api_key, api_secret = self.registry.credentials(account)
        try:
            resp = await self.client.new_order(api_key, api_secret, order_params(request))
        except AsterAPIError as e:
            logger.warning(f"{account}: {request.type} {request.side} {request.symbol} rejected: {e}")
            raise LegSubmissionFailed(account, str(e)) from e
        order_id = resp.get("orderId") if isinstance(resp, dict) else None
        logger.info(
            f"{account}: {request.type} {request.side} {request.quantity or ''} {request.symbol} "
            f"accepted (order {order_id})"
        )
        return str(order_id) if order_id is not None else ""

    async def list_open_orders(self, account: str, symbol: str) -> list[RestingOrder]:
        try:
            api_key, api_secret = self.registry.credentials(account)
            payload = await self.client.open_orders(api_key, api_secret, symbol)
        except (AsterAPIError, CredentialsMissing, ValueError) as e:
            logger.warning(f"{account}: could not list open orders for {symbol}: {e}")
            return []
        orders = [normalize_resting_order(raw) for raw in payload or []]
        return [o for o in orders if o is not None]

    async def cancel_all_open_orders(self, account: str, symbol: str):
        api_key, api_secret = self.registry.credentials(account)
        try:
            await self.client.cancel_all_open_orders(api_key, api_secret, symbol)
        except AsterAPIError as e:
            raise LegSubmissionFailed(account, f"cancel open orders: {e}") from e

    async def fetch_account_state(self, account: str) -> AccountState | None:
        try:
            api_key, api_secret = self.registry.credentials(account)
            payload = await self.client.account(api_key, api_secret)
        except (AsterAPIError, CredentialsMissing, ValueError) as e:
            logger.warning(f"{account}: account state fetch failed: {e}")
            return None
        return parse_account_state(account, payload)
