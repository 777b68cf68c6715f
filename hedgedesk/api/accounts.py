"""Account API: registry CRUD, batch import and live state refresh."""

from fastapi import APIRouter, Depends, HTTPException

from hedgedesk.api.deps import get_current_operator, http_error
from hedgedesk.engine.errors import AccountStateUnavailable, InvalidInput
from hedgedesk.engine.runtime import Runtime, get_runtime
from hedgedesk.models.account import Account
from hedgedesk.schemas.account import (
    AccountBatchImport,
    AccountBatchResult,
    AccountCreate,
    AccountLiveRead,
)
from hedgedesk.services.registry import parse_account_lines
from hedgedesk.utils.logging import mask_key

router = APIRouter(prefix="/api/accounts", tags=["accounts"], dependencies=[Depends(get_current_operator)])


def _to_read(account: Account, runtime: Runtime) -> AccountLiveRead:
    state = runtime.live_state.get(account.name)
    return AccountLiveRead(
        id=account.id,
        name=account.name,
        api_key_masked=mask_key(account.api_key),
        trade_count=account.trade_count,
        cumulative_volume=account.cumulative_volume,
        created_at=account.created_at,
        available_balance=state.available_balance if state else None,
        total_wallet_balance=state.total_wallet_balance if state else None,
        has_position=state.has_open_position if state else False,
        state_fetched_at=state.fetched_at if state else None,
    )


@router.get("", response_model=list[AccountLiveRead])
def list_accounts(runtime: Runtime = Depends(get_runtime)):
    return [_to_read(a, runtime) for a in runtime.registry.all()]


@router.post("", response_model=AccountLiveRead, status_code=201)
def create_account(data: AccountCreate, runtime: Runtime = Depends(get_runtime)):
    try:
        account = runtime.registry.add(data.name, data.api_key, data.api_secret)
    except InvalidInput as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_read(account, runtime)


@router.post("/batch", response_model=AccountBatchResult, status_code=201)
def import_accounts(data: AccountBatchImport, runtime: Runtime = Depends(get_runtime)):
    rows = parse_account_lines(data.text)
    if not rows:
        raise HTTPException(status_code=422, detail="No complete name/apiKey/apiSecret lines found")
    created, skipped = runtime.registry.add_many(rows)
    return AccountBatchResult(created=created, skipped=skipped)


@router.delete("/{name}", status_code=204)
def delete_account(name: str, runtime: Runtime = Depends(get_runtime)):
    if runtime.registry.get(name) is None:
        raise HTTPException(status_code=404, detail="Account not found")
    try:
        runtime.registry.delete(name)
    except InvalidInput as e:
        raise HTTPException(status_code=409, detail=str(e))
    runtime.live_state.forget(name)


@router.post("/{name}/refresh", response_model=AccountLiveRead)
async def refresh_account(name: str, runtime: Runtime = Depends(get_runtime)):
    account = runtime.registry.get(name)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    state = await runtime.live_state.refresh(name)
    if state is None:
        raise http_error(AccountStateUnavailable(name))
    return _to_read(account, runtime)


@router.post("/refresh")
async def refresh_all_accounts(runtime: Runtime = Depends(get_runtime)):
    names = runtime.registry.names()
    await runtime.live_state.refresh_all(names)
    return {"refreshed": len(names)}
