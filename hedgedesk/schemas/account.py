"""Pydantic schemas for Account API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    api_key: str = Field(min_length=1)
    api_secret: str = Field(min_length=1)  # encrypted before storage

    @field_validator("name", "api_key", "api_secret")
    @classmethod
    def _trim_required_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class AccountBatchImport(BaseModel):
    """Tab-separated ``name, apiKey, apiSecret`` lines."""

    text: str = Field(min_length=1)


class AccountBatchResult(BaseModel):
    created: list[str]
    skipped: list[str]


class AccountRead(BaseModel):
    id: int
    name: str
    api_key_masked: str
    trade_count: int
    cumulative_volume: float
    created_at: datetime
    # api_secret is NEVER exposed


class AccountLiveRead(AccountRead):
    available_balance: float | None = None
    total_wallet_balance: float | None = None
    has_position: bool = False
    state_fetched_at: float | None = None
