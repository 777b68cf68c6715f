"""HedgeOrder model: a primary leg paired with one or two opposing hedge legs."""

import secrets
import time
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


def generate_order_id() -> str:
    return f"order-{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class HedgeOrder(SQLModel, table=True):
    __tablename__ = "hedge_order"

    id: str = Field(default_factory=generate_order_id, primary_key=True)
    symbol: str  # BTC, ETH, SOL
    primary_account: str = Field(index=True)
    hedge_account: str
    hedge_account_2: str | None = None
    amount: float  # base-asset size
    take_profit_pct: float = 50.0
    stop_loss_pct: float = 50.0
    status: str = Field(default="draft", index=True)  # "draft", "open", "closed"
    batch_index: int | None = None  # ordinal label from batch creation
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def hedge_accounts(self) -> list[str]:
        return [name for name in (self.hedge_account, self.hedge_account_2) if name]

    @property
    def participants(self) -> list[str]:
        return [self.primary_account, *self.hedge_accounts]
