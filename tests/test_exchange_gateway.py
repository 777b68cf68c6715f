"""Venue client signing, error mapping and payload normalization."""

import hashlib
import hmac
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from hedgedesk.engine.errors import CredentialsMissing, LegSubmissionFailed
from hedgedesk.engine.types import LivePosition, OrderRequest, RestingOrder
from hedgedesk.services.aster_client import AsterClient, sign_query
from hedgedesk.services.exchange_gateway import (
    ExchangeGateway,
    normalize_position,
    normalize_resting_order,
    order_params,
    parse_account_state,
)
from hedgedesk.services.live_state import LiveStateCache, attach_protection_prices
from hedgedesk.services.market_data import PriceBook, refresh_prices
from tests.fakes import FakeGateway

SECRET = "s3cret"


class StubRegistry:
    def credentials(self, name):
        if name == "ghost":
            raise CredentialsMissing(name)
        return f"key-{name}", SECRET


def _gateway(handler):
    client = AsterClient("https://venue.test", transport=httpx.MockTransport(handler))
    return ExchangeGateway(StubRegistry(), client), client


def test_sign_query_encodes_booleans_and_drops_none():
    signed = sign_query({"symbol": "BTCUSDT", "reduceOnly": True, "price": None}, SECRET)
    query, signature = signed.split("&signature=")
    assert query == "symbol=BTCUSDT&reduceOnly=true"
    assert signature == hmac.new(SECRET.encode(), query.encode(), hashlib.sha256).hexdigest()


def test_order_params_only_sends_set_flags():
    params = order_params(OrderRequest(symbol="btcusdt", side="BUY", type="MARKET", quantity="0.01"))
    assert params == {"symbol": "BTCUSDT", "side": "BUY", "type": "MARKET", "quantity": "0.01"}

    params = order_params(OrderRequest(
        symbol="BTCUSDT",
        side="SELL",
        type="STOP_MARKET",
        stop_price="47500",
        close_position=True,
        position_side="LONG",
        working_type="MARK_PRICE",
    ))
    assert params["closePosition"] is True
    assert params["positionSide"] == "LONG"
    assert params["workingType"] == "MARK_PRICE"
    assert "reduceOnly" not in params


@pytest.mark.asyncio
async def test_submit_order_signs_request():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"orderId": 123})

    gateway, client = _gateway(handler)
    order_id = await gateway.submit_order(
        "A", OrderRequest(symbol="BTCUSDT", side="BUY", type="MARKET", quantity="0.01", reduce_only=True)
    )
    await client.close()

    assert order_id == "123"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/fapi/v1/order"
    assert request.headers["X-MBX-APIKEY"] == "key-A"
    query = request.url.query.decode()
    unsigned, signature = query.split("&signature=")
    assert signature == hmac.new(SECRET.encode(), unsigned.encode(), hashlib.sha256).hexdigest()
    params = parse_qs(unsigned)
    assert params["quantity"] == ["0.01"]
    assert params["reduceOnly"] == ["true"]
    assert params["recvWindow"] == ["5000"]
    assert "timestamp" in params


@pytest.mark.asyncio
async def test_rejection_carries_venue_message():
    def handler(request):
        return httpx.Response(400, json={"code": -2019, "msg": "Margin is insufficient."})

    gateway, client = _gateway(handler)
    with pytest.raises(LegSubmissionFailed) as exc:
        await gateway.submit_order("B", OrderRequest(symbol="BTCUSDT", side="SELL", type="MARKET", quantity="1"))
    await client.close()

    assert exc.value.account == "B"
    assert exc.value.reason == "Margin is insufficient."


@pytest.mark.asyncio
async def test_submit_without_credentials():
    gateway, client = _gateway(lambda request: httpx.Response(200, json={}))
    with pytest.raises(CredentialsMissing):
        await gateway.submit_order("ghost", OrderRequest(symbol="BTCUSDT", side="BUY", type="MARKET"))
    await client.close()


@pytest.mark.asyncio
async def test_fetch_account_state_normalizes_payload():
    payload = {
        "availableBalance": "1234.5",
        "totalWalletBalance": "2000",
        "positions": [
            {"symbol": "BTCUSDT", "positionAmt": "-0.010", "entryPrice": "50100.5",
             "leverage": "10", "updateTime": 1700000000123, "positionSide": "BOTH"},
            {"symbol": "ETHUSDT", "positionAmt": "0", "leverage": "20", "updateTime": 0},
        ],
    }
    gateway, client = _gateway(lambda request: httpx.Response(200, json=payload))
    state = await gateway.fetch_account_state("A")
    await client.close()

    assert state.available_balance == 1234.5
    assert [p.symbol for p in state.positions] == ["BTCUSDT"]
    pos = state.position("BTCUSDT")
    assert pos.signed_size == -0.01
    assert pos.update_time == 1700000000123
    assert state.leverage("ETHUSDT") == 20.0
    assert state.leverage("BTCUSDT") == 10.0


@pytest.mark.asyncio
async def test_fetch_account_state_failure_returns_none():
    gateway, client = _gateway(lambda request: httpx.Response(500, text="upstream down"))
    assert await gateway.fetch_account_state("A") is None
    assert await gateway.list_open_orders("A", "BTCUSDT") == []
    await client.close()


@pytest.mark.asyncio
async def test_cancel_failure_is_a_leg_failure():
    gateway, client = _gateway(lambda request: httpx.Response(400, json={"code": -1, "msg": "nope"}))
    with pytest.raises(LegSubmissionFailed) as exc:
        await gateway.cancel_all_open_orders("A", "BTCUSDT")
    await client.close()
    assert exc.value.reason == "cancel open orders: nope"


@pytest.mark.asyncio
async def test_ticker_prices():
    def handler(request):
        assert "X-MBX-APIKEY" not in request.headers
        return httpx.Response(200, json=[
            {"symbol": "BTCUSDT", "price": "50000.1"},
            {"symbol": "ETHUSDT", "price": "bad"},
        ])

    client = AsterClient("https://venue.test", transport=httpx.MockTransport(handler))
    prices = await client.ticker_prices()
    await client.close()
    assert prices == {"BTCUSDT": 50000.1}


class TestNormalization:
    def test_short_aliases(self):
        pos = normalize_position("A", {"s": "btcusdt", "pa": "0.5", "ep": "49000", "ps": "LONG", "u": 17})
        assert pos.symbol == "BTCUSDT"
        assert pos.signed_size == 0.5
        assert pos.entry_price == 49000.0
        assert pos.side == "LONG"
        assert pos.update_time == 17

    def test_missing_symbol(self):
        assert normalize_position("A", {"positionAmt": "1"}) is None
        assert normalize_resting_order({"type": "MARKET"}) is None

    def test_resting_order_aliases(self):
        order = normalize_resting_order({"s": "BTCUSDT", "o": "STOP_MARKET", "stopPrice": "0", "price": "0", "i": "9"})
        assert order.type == "STOP_MARKET"
        assert order.stop_price is None
        assert order.price is None
        assert order.order_id == 9

    def test_usdt_asset_fallback(self):
        state = parse_account_state("A", {"assets": [{"asset": "USDT", "availableBalance": "42"}]})
        assert state.available_balance == 42.0
        assert state.positions == []


class TestProtectionPrices:
    def _pos(self, side="BOTH"):
        return LivePosition(account="A", symbol="BTCUSDT", signed_size=1.0, side=side)

    def test_first_orders_win(self):
        orders = [
            RestingOrder(symbol="BTCUSDT", type="TAKE_PROFIT_MARKET", stop_price=55000.0),
            RestingOrder(symbol="BTCUSDT", type="STOP_MARKET", stop_price=45000.0),
            RestingOrder(symbol="BTCUSDT", type="TAKE_PROFIT_MARKET", stop_price=56000.0),
            RestingOrder(symbol="ETHUSDT", type="STOP_MARKET", stop_price=1.0),
        ]
        (pos,) = attach_protection_prices([self._pos()], orders)
        assert pos.take_profit_price == 55000.0
        assert pos.stop_loss_price == 45000.0

    def test_hedge_mode_orders_match_both(self):
        orders = [RestingOrder(symbol="BTCUSDT", type="STOP_MARKET", stop_price=45000.0, position_side="LONG")]
        (pos,) = attach_protection_prices([self._pos()], orders)
        assert pos.stop_loss_price == 45000.0

    def test_other_position_side_ignored(self):
        orders = [RestingOrder(symbol="BTCUSDT", type="STOP_MARKET", stop_price=45000.0, position_side="SHORT")]
        (pos,) = attach_protection_prices([self._pos("LONG")], orders)
        assert pos.stop_loss_price is None


@pytest.mark.asyncio
async def test_failed_refresh_keeps_last_snapshot():
    gateway = FakeGateway()
    gateway.add_account("A", 1000.0)
    gateway.set_position("A", "BTCUSDT", 0.5)
    cache = LiveStateCache(gateway)

    await cache.refresh("A")
    gateway.unavailable.add("A")
    state = await cache.refresh("A")

    assert state.position("BTCUSDT").signed_size == 0.5
    order = SimpleNamespace(symbol="BTC", participants=["A", "B"])
    positions = cache.positions_for(order)
    assert list(positions) == ["A"]


@pytest.mark.asyncio
async def test_refresh_prices_maps_venue_symbols():
    def handler(request):
        return httpx.Response(200, json=[
            {"symbol": "BTCUSDT", "price": "50000"},
            {"symbol": "SOLUSDT", "price": "150.5"},
            {"symbol": "XRPUSDT", "price": "0.5"},
        ])

    client = AsterClient("https://venue.test", transport=httpx.MockTransport(handler))
    book = PriceBook()
    assert await refresh_prices(book, client) == 2
    await client.close()
    assert book.snapshot() == {"BTC": 50000.0, "SOL": 150.5}
    assert book.get("ETH") is None


@pytest.mark.asyncio
async def test_refresh_prices_keeps_book_on_error():
    client = AsterClient("https://venue.test", transport=httpx.MockTransport(lambda r: httpx.Response(502)))
    book = PriceBook()
    book.update("BTC", 49000.0)
    assert await refresh_prices(book, client) == 0
    await client.close()
    assert book.get("BTC") == 49000.0
