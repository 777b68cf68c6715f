"""Account model: one exchange account taking part in hedge trades."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Account(SQLModel, table=True):
    __tablename__ = "account"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    api_key: str = ""
    api_secret_encrypted: str = ""  # Fernet-encrypted API secret
    trade_count: int = 0  # completed legs, opens and closes
    cumulative_volume: float = 0.0  # notional, quote currency
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
