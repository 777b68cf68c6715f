"""End-to-end opening and closing attempts against a simulated venue."""

import asyncio

import pytest

from hedgedesk.engine.errors import (
    AccountStateUnavailable,
    AttemptInProgress,
    CredentialsMissing,
    InsufficientMargin,
    InvalidInput,
    LegSubmissionFailed,
    LeverageMismatch,
    PartialFailure,
    PriceUnavailable,
)
from hedgedesk.engine.orchestrator import HedgeOrchestrator
from hedgedesk.engine.types import BUY, SELL
from hedgedesk.services.live_state import LiveStateCache
from tests.fakes import StubRng

# 5000 USDT at 10x against a 50000 price: can open exactly 1 BTC
BALANCE = 5000.0


def _setup(registry, gateway, names=("A", "B"), balance=BALANCE):
    for name in names:
        registry.add(name, f"key-{name}", f"secret-{name}")
        gateway.add_account(name, balance)


def _orchestrator(registry, order_store, gateway, prices, rng=None):
    return HedgeOrchestrator(
        registry, order_store, gateway, LiveStateCache(gateway), prices, rng=rng or StubRng()
    )


def _draft(order_store, amount=0.01, hedge_2=None, tp=60.0, sl=60.0):
    return order_store.create(
        symbol="BTC",
        primary_account="A",
        hedge_account="B",
        hedge_account_2=hedge_2,
        amount=amount,
        take_profit_pct=tp,
        stop_loss_pct=sl,
    )


@pytest.mark.asyncio
async def test_open_then_close_round_trip(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    result = await orch.open_order(order.id)

    assert result.status == "open"
    assert order_store.get(order.id).status == "open"
    for name in ("A", "B"):
        account = registry.get(name)
        assert account.trade_count == 1
        assert account.cumulative_volume == pytest.approx(500.0)
    assert orch.derived_state(order_store.get(order.id)).is_fully_open is True

    result = await orch.close_order(order.id)

    assert result.status == "closed"
    assert order_store.get(order.id).status == "closed"
    assert orch.derived_state(order_store.get(order.id)).is_fully_flat is True
    assert registry.get("A").trade_count == 2
    assert registry.get("B").cumulative_volume == pytest.approx(1000.0)
    assert sorted(gateway.cancelled) == [("A", "BTCUSDT"), ("B", "BTCUSDT")]


@pytest.mark.asyncio
async def test_open_submits_entries_then_protective_orders(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices, rng=StubRng(flip=0.9))
    order = _draft(order_store, tp=50.0, sl=50.0)

    await orch.open_order(order.id)

    entries = dict(gateway.orders_of_type("MARKET"))
    assert entries["A"].side == SELL
    assert entries["B"].side == BUY
    assert entries["A"].quantity == "0.01"

    take_profits = dict(gateway.orders_of_type("TAKE_PROFIT_MARKET"))
    stops = dict(gateway.orders_of_type("STOP_MARKET"))
    # SELL primary: target below entry, stop above
    assert take_profits["A"].stop_price == "47500"
    assert stops["A"].stop_price == "52500"
    assert take_profits["A"].side == BUY
    assert take_profits["A"].close_position is True
    assert take_profits["A"].working_type == "MARK_PRICE"
    assert take_profits["B"].stop_price == "52500"
    assert stops["B"].side == SELL


@pytest.mark.asyncio
async def test_open_with_two_hedges_splits_size(registry, order_store, gateway, prices):
    _setup(registry, gateway, names=("A", "B", "C"))
    orch = _orchestrator(registry, order_store, gateway, prices, rng=StubRng(flip=0.1, ratio=0.4))
    order = _draft(order_store, amount=0.5, hedge_2="C")

    result = await orch.open_order(order.id)

    assert result.status == "open"
    entries = dict(gateway.orders_of_type("MARKET"))
    assert entries["A"].side == BUY
    assert entries["B"].quantity == "0.2"
    assert entries["C"].quantity == "0.3"
    assert {entries["B"].side, entries["C"].side} == {SELL}
    assert orch.derived_state(order_store.get(order.id)).is_fully_open is True


@pytest.mark.asyncio
async def test_insufficient_margin_leaves_draft(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store, amount=0.9)

    with pytest.raises(InsufficientMargin) as exc:
        await orch.open_order(order.id)

    assert exc.value.ceiling == pytest.approx(0.9)
    assert order_store.get(order.id).status == "draft"
    assert gateway.submitted == []
    assert registry.get("A").trade_count == 0
    logs = order_store.attempts(order.id)
    assert logs[0].status == "rejected"


@pytest.mark.asyncio
async def test_leverage_mismatch_blocks_opening(registry, order_store, gateway, prices):
    registry.add("A", "k", "s")
    registry.add("B", "k", "s")
    gateway.add_account("A", 1_000_000, leverage=10)
    gateway.add_account("B", 1_000_000, leverage=20)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(LeverageMismatch):
        await orch.open_order(order.id)
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_open_without_price_fails(registry, order_store, gateway):
    from hedgedesk.services.market_data import PriceBook

    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, PriceBook())
    order = _draft(order_store)

    with pytest.raises(PriceUnavailable):
        await orch.open_order(order.id)


@pytest.mark.asyncio
async def test_open_requires_credentials(registry, order_store, gateway, prices):
    registry.add("A", "k", "s")
    gateway.add_account("A", BALANCE)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(CredentialsMissing) as exc:
        await orch.open_order(order.id)
    assert exc.value.account == "B"


@pytest.mark.asyncio
async def test_open_requires_account_state(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.unavailable.add("B")
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(AccountStateUnavailable):
        await orch.open_order(order.id)


@pytest.mark.asyncio
async def test_open_refused_with_leftover_exposure(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.set_position("A", "BTCUSDT", 0.01)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(InvalidInput):
        await orch.open_order(order.id)
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_open_partial_failure_keeps_draft(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.reject_entry["B"] = "Margin is insufficient."
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(PartialFailure) as exc:
        await orch.open_order(order.id)

    assert exc.value.succeeded == ["A"]
    assert [f.account for f in exc.value.failures] == ["B"]
    assert "B: Margin is insufficient." in str(exc.value)
    assert order_store.get(order.id).status == "draft"
    assert registry.get("A").trade_count == 1
    assert registry.get("B").trade_count == 0
    assert order_store.attempts(order.id)[0].status == "partial"


@pytest.mark.asyncio
async def test_open_all_legs_rejected(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.reject_entry["A"] = "rejected A"
    gateway.reject_entry["B"] = "rejected B"
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    with pytest.raises(LegSubmissionFailed) as exc:
        await orch.open_order(order.id)

    assert "A" in str(exc.value) and "B" in str(exc.value)
    assert order_store.get(order.id).status == "draft"


@pytest.mark.asyncio
async def test_protective_order_failure_is_a_warning(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.reject_protective["B"] = "Order would immediately trigger."
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    result = await orch.open_order(order.id)

    assert result.status == "open"
    assert any(w.startswith("B: take-profit order failed") for w in result.warnings)
    assert registry.get("B").trade_count == 1


@pytest.mark.asyncio
async def test_concurrent_attempt_is_rejected(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)
    gateway.gate = asyncio.Event()
    gateway.entered = asyncio.Event()

    task = asyncio.create_task(orch.open_order(order.id))
    await gateway.entered.wait()
    assert orch.in_progress(order.id) is True

    with pytest.raises(AttemptInProgress):
        await orch.close_order(order.id)

    gateway.gate.set()
    result = await task
    assert result.status == "open"
    assert orch.in_progress(order.id) is False


@pytest.mark.asyncio
async def test_close_failure_leaves_status(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)
    await orch.open_order(order.id)

    gateway.unavailable.add("B")
    with pytest.raises(PartialFailure) as exc:
        await orch.close_order(order.id)

    assert exc.value.succeeded == ["A"]
    assert order_store.get(order.id).status == "open"
    assert orch.derived_state(order_store.get(order.id)).any_leg_open is True


@pytest.mark.asyncio
async def test_close_on_draft_flattens_and_closes(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    gateway.set_position("A", "BTCUSDT", -0.02)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)

    result = await orch.close_order(order.id)

    assert result.status == "closed"
    assert order_store.get(order.id).status == "closed"
    (account, request), = gateway.orders_of_type("MARKET")
    assert account == "A"
    assert request.side == BUY
    assert request.quantity == "0.02"
    assert request.reduce_only is True
    assert registry.get("B").trade_count == 0


@pytest.mark.asyncio
async def test_closed_order_cannot_be_closed_again(registry, order_store, gateway, prices):
    _setup(registry, gateway)
    orch = _orchestrator(registry, order_store, gateway, prices)
    order = _draft(order_store)
    order_store.set_status(order.id, "closed")

    with pytest.raises(InvalidInput):
        await orch.close_order(order.id)
