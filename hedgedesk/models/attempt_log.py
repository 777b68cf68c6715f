"""AttemptLog model: one row per opening or closing attempt."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class AttemptLog(SQLModel, table=True):
    __tablename__ = "attempt_log"

    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: str  # "open", "close"
    status: str  # "success", "partial", "failed", "rejected"
    message: str | None = None
    price: float | None = None
    legs: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSON))
