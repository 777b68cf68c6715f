"""Hedge order API: drafts, open/close attempts, batch and random creation."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from hedgedesk.api.deps import get_current_operator, http_error
from hedgedesk.engine.batch import build_batch_drafts, build_random_draft
from hedgedesk.engine.errors import HedgeError, InvalidInput
from hedgedesk.engine.planner import ParticipantCapacity
from hedgedesk.engine.runtime import Runtime, get_runtime
from hedgedesk.models.hedge_order import HedgeOrder
from hedgedesk.schemas.hedge_order import (
    AttemptLogRead,
    BatchOrderRequest,
    HedgeOrderCreate,
    HedgeOrderRead,
    HedgeOrderUpdate,
    HedgeOrderView,
    LegView,
    RandomOrderRequest,
)
from hedgedesk.utils.constants import MARKET_SYMBOL_MAP

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"], dependencies=[Depends(get_current_operator)])


def _to_view(order: HedgeOrder, runtime: Runtime) -> HedgeOrderView:
    price = runtime.prices.get(order.symbol)
    derived = runtime.orchestrator.derived_state(order)
    venue_symbol = MARKET_SYMBOL_MAP.get(order.symbol, order.symbol)

    legs = []
    for name in order.participants:
        leg = LegView(account=name, role="primary" if name == order.primary_account else "hedge")
        state = runtime.live_state.get(name)
        if state is not None:
            leg.has_state = True
            leg.leverage = state.leverage(venue_symbol) or None
            if price and leg.leverage:
                leg.can_open = ParticipantCapacity.from_balance(
                    name, state.available_balance, leg.leverage, price
                ).can_open
            pos = state.position(venue_symbol)
            if pos is not None:
                leg.size = pos.signed_size
                leg.entry_price = pos.entry_price
                leg.take_profit_price = pos.take_profit_price
                leg.stop_loss_price = pos.stop_loss_price
                leg.update_time = pos.update_time
        legs.append(leg)

    return HedgeOrderView(
        **HedgeOrderRead.model_validate(order).model_dump(),
        price=price,
        is_fully_open=derived.is_fully_open,
        is_fully_flat=derived.is_fully_flat,
        any_leg_open=derived.any_leg_open,
        in_progress=runtime.orchestrator.in_progress(order.id),
        legs=legs,
    )


def _get_or_404(order_id: str, runtime: Runtime) -> HedgeOrder:
    order = runtime.orders.get(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _ensure_accounts_exist(names: list[str], runtime: Runtime):
    known = set(runtime.registry.names())
    missing = [n for n in names if n and n not in known]
    if missing:
        raise HTTPException(status_code=422, detail=f"Unknown accounts: {', '.join(missing)}")


@router.get("", response_model=list[HedgeOrderView])
def list_orders(
    status: str | None = None,
    openable: bool | None = None,
    closable: bool | None = None,
    runtime: Runtime = Depends(get_runtime),
):
    views = [_to_view(o, runtime) for o in runtime.orders.all(status=status)]
    if openable is not None:
        views = [v for v in views if (v.status != "open" and not v.any_leg_open) == openable]
    if closable is not None:
        views = [v for v in views if (v.status == "open" or v.any_leg_open) == closable]
    return views


@router.post("", response_model=HedgeOrderRead, status_code=201)
def create_order(data: HedgeOrderCreate, runtime: Runtime = Depends(get_runtime)):
    _ensure_accounts_exist([data.primary_account, data.hedge_account, data.hedge_account_2], runtime)
    return runtime.orders.create(**data.model_dump())


@router.post("/batch", response_model=list[HedgeOrderRead], status_code=201)
def create_batch(data: BatchOrderRequest, runtime: Runtime = Depends(get_runtime)):
    """Create one draft per rotation group over all registered accounts."""
    names = runtime.registry.names()
    if len(names) < 3:
        raise HTTPException(status_code=422, detail="Batch creation needs at least 3 accounts")
    drafts = build_batch_drafts(
        names,
        data.symbol,
        data.amount,
        data.take_profit_pct,
        data.stop_loss_pct,
        rng=runtime.rng,
    )
    return [runtime.orders.create(**draft) for draft in drafts]


@router.post("/random", response_model=HedgeOrderRead, status_code=201)
def create_random(data: RandomOrderRequest, runtime: Runtime = Depends(get_runtime)):
    """Pair the richest idle account against the two poorest idle accounts."""
    states = [s for s in (runtime.live_state.get(n) for n in runtime.registry.names()) if s is not None]
    try:
        draft = build_random_draft(states, data.symbol, data.amount, rng=runtime.rng)
    except InvalidInput as e:
        raise http_error(e)
    return runtime.orders.create(**draft)


@router.post("/purge-finished")
def purge_finished(runtime: Runtime = Depends(get_runtime)):
    """Delete orders that were worked and now have no exposure left."""
    deleted = []
    for order in runtime.orders.all():
        if order.status == "open" or order.updated_at == order.created_at:
            continue
        if runtime.orchestrator.derived_state(order).any_leg_open:
            continue
        if runtime.orchestrator.in_progress(order.id):
            continue
        runtime.orders.delete(order.id)
        deleted.append(order.id)
    if deleted:
        logger.info(f"Purged {len(deleted)} finished orders")
    return {"deleted": deleted}


@router.get("/{order_id}", response_model=HedgeOrderView)
def get_order(order_id: str, runtime: Runtime = Depends(get_runtime)):
    return _to_view(_get_or_404(order_id, runtime), runtime)


@router.put("/{order_id}", response_model=HedgeOrderRead)
def update_order(order_id: str, data: HedgeOrderUpdate, runtime: Runtime = Depends(get_runtime)):
    order = _get_or_404(order_id, runtime)
    if order.status == "open" or runtime.orchestrator.derived_state(order).any_leg_open:
        raise HTTPException(status_code=409, detail="Order has live positions, close it before editing")

    update_data = data.model_dump(exclude_unset=True)

    # Validate the merged order so partial updates cannot bypass cross-field rules
    merged = {**HedgeOrderRead.model_validate(order).model_dump(), **update_data}
    try:
        valid = HedgeOrderCreate.model_validate(merged)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=errors)
    _ensure_accounts_exist([valid.primary_account, valid.hedge_account, valid.hedge_account_2], runtime)

    try:
        return runtime.orders.update(order_id, update_data)
    except InvalidInput as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: str, runtime: Runtime = Depends(get_runtime)):
    _get_or_404(order_id, runtime)
    try:
        runtime.orders.delete(order_id)
    except InvalidInput as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{order_id}/open")
async def open_order(order_id: str, runtime: Runtime = Depends(get_runtime)):
    _get_or_404(order_id, runtime)
    try:
        result = await runtime.orchestrator.open_order(order_id)
    except HedgeError as e:
        raise http_error(e)
    return result.as_dict()


@router.post("/{order_id}/close")
async def close_order(order_id: str, runtime: Runtime = Depends(get_runtime)):
    _get_or_404(order_id, runtime)
    try:
        result = await runtime.orchestrator.close_order(order_id)
    except HedgeError as e:
        raise http_error(e)
    return result.as_dict()


@router.get("/{order_id}/logs", response_model=list[AttemptLogRead])
def order_logs(order_id: str, limit: int = 50, runtime: Runtime = Depends(get_runtime)):
    _get_or_404(order_id, runtime)
    return runtime.orders.attempts(order_id, limit=limit)
