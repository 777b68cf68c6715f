"""Dashboard API: balances, volume and order counts across accounts."""

from fastapi import APIRouter, Depends

from hedgedesk.api.deps import get_current_operator
from hedgedesk.engine.runtime import Runtime, get_runtime

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(get_current_operator)])


@router.get("/summary")
def dashboard_summary(runtime: Runtime = Depends(get_runtime)):
    """Aggregated stats across all accounts and orders."""
    accounts = runtime.registry.all()
    orders = runtime.orders.all()

    per_account = []
    total_balance = 0.0
    for account in accounts:
        state = runtime.live_state.get(account.name)
        balance = state.total_wallet_balance if state else None
        total_balance += balance or 0.0
        per_account.append({
            "name": account.name,
            "wallet_balance": balance,
            "available_balance": state.available_balance if state else None,
            "trade_count": account.trade_count,
            "cumulative_volume": round(account.cumulative_volume, 2),
            "has_position": state.has_open_position if state else False,
        })

    status_counts = {"draft": 0, "open": 0, "closed": 0}
    for order in orders:
        status_counts[order.status] = status_counts.get(order.status, 0) + 1

    return {
        "total_accounts": len(accounts),
        "total_wallet_balance": round(total_balance, 2),
        "total_volume": round(sum(a.cumulative_volume for a in accounts), 2),
        "total_trades": sum(a.trade_count for a in accounts),
        "orders": status_counts,
        "accounts": per_account,
    }
