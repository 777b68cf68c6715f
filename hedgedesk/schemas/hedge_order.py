"""Pydantic schemas for HedgeOrder API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from hedgedesk.utils.constants import MIN_PROTECTION_PCT, SYMBOL_OPTIONS


def _check_symbol(value: str) -> str:
    symbol = value.strip().upper()
    if symbol not in SYMBOL_OPTIONS:
        raise ValueError(f"must be one of: {', '.join(SYMBOL_OPTIONS)}")
    return symbol


def _check_protection(value: float) -> float:
    if value <= MIN_PROTECTION_PCT:
        raise ValueError(f"must be greater than {MIN_PROTECTION_PCT:g}")
    return value


class HedgeOrderCreate(BaseModel):
    symbol: str = "BTC"
    primary_account: str = Field(min_length=1, max_length=120)
    hedge_account: str = Field(min_length=1, max_length=120)
    hedge_account_2: str | None = Field(default=None, max_length=120)
    amount: float = Field(gt=0)
    take_profit_pct: float = 50.0
    stop_loss_pct: float = 50.0

    @field_validator("symbol")
    @classmethod
    def _validate_symbol(cls, value: str) -> str:
        return _check_symbol(value)

    @field_validator("primary_account", "hedge_account")
    @classmethod
    def _trim_required_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("hedge_account_2")
    @classmethod
    def _trim_optional_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("take_profit_pct", "stop_loss_pct")
    @classmethod
    def _validate_protection(cls, value: float) -> float:
        return _check_protection(value)

    @model_validator(mode="after")
    def _validate_accounts(self):
        hedges = [h for h in (self.hedge_account, self.hedge_account_2) if h]
        if self.primary_account in hedges:
            raise ValueError("primary_account cannot also be a hedge account")
        if len(set(hedges)) != len(hedges):
            raise ValueError("hedge accounts must be different")
        return self


class HedgeOrderUpdate(BaseModel):
    symbol: str | None = None
    primary_account: str | None = Field(default=None, min_length=1, max_length=120)
    hedge_account: str | None = Field(default=None, min_length=1, max_length=120)
    hedge_account_2: str | None = Field(default=None, max_length=120)
    amount: float | None = Field(default=None, gt=0)
    take_profit_pct: float | None = None
    stop_loss_pct: float | None = None

    @field_validator("symbol")
    @classmethod
    def _validate_optional_symbol(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _check_symbol(value)

    @field_validator("take_profit_pct", "stop_loss_pct")
    @classmethod
    def _validate_optional_protection(cls, value: float | None) -> float | None:
        if value is None:
            return None
        return _check_protection(value)


class HedgeOrderRead(BaseModel):
    id: str
    symbol: str
    primary_account: str
    hedge_account: str
    hedge_account_2: str | None
    amount: float
    take_profit_pct: float
    stop_loss_pct: float
    status: str
    batch_index: int | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LegView(BaseModel):
    account: str
    role: str  # primary / hedge
    size: float = 0.0
    entry_price: float | None = None
    leverage: float | None = None
    can_open: float | None = None
    take_profit_price: float | None = None
    stop_loss_price: float | None = None
    update_time: int | None = None
    has_state: bool = False


class HedgeOrderView(HedgeOrderRead):
    price: float | None = None
    is_fully_open: bool = False
    is_fully_flat: bool = False
    any_leg_open: bool = False
    in_progress: bool = False
    legs: list[LegView] = []


class BatchOrderRequest(BaseModel):
    symbol: str = "BTC"
    amount: float = Field(gt=0)
    take_profit_pct: float = 50.0
    stop_loss_pct: float = 50.0

    @field_validator("symbol")
    @classmethod
    def _validate_symbol(cls, value: str) -> str:
        return _check_symbol(value)

    @field_validator("take_profit_pct", "stop_loss_pct")
    @classmethod
    def _validate_protection(cls, value: float) -> float:
        return _check_protection(value)


class RandomOrderRequest(BaseModel):
    symbol: str = "BTC"
    amount: float = Field(gt=0)

    @field_validator("symbol")
    @classmethod
    def _validate_symbol(cls, value: str) -> str:
        return _check_symbol(value)


class AttemptLogRead(BaseModel):
    id: int
    order_id: str
    timestamp: datetime
    action: str
    status: str
    message: str | None
    price: float | None
    legs: list[dict[str, Any]] | None

    model_config = {"from_attributes": True}
