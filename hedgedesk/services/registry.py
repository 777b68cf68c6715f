"""Account registry and hedge order store.

The engine reads and writes persisted state only through these two
classes. Statistics updates are single SQL increments so concurrent legs on
the same account never lose an update.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select, or_

from hedgedesk.engine.errors import CredentialsMissing, InvalidInput
from hedgedesk.models.account import Account
from hedgedesk.models.attempt_log import AttemptLog
from hedgedesk.models.hedge_order import HedgeOrder
from hedgedesk.services.encryption import decrypt, encrypt

logger = logging.getLogger(__name__)


def parse_account_lines(text: str) -> list[tuple[str, str, str]]:
    """Parse ``name<TAB>apiKey<TAB>apiSecret`` lines, skipping incomplete ones."""
    rows = []
    for line in text.splitlines():
        parts = [p.strip() for p in line.split("\t")]
        if len(parts) >= 3 and all(parts[:3]):
            rows.append((parts[0], parts[1], parts[2]))
    return rows


class AccountRegistry:
    def __init__(self, engine: Engine):
        self.engine = engine

    def all(self) -> list[Account]:
        with Session(self.engine) as session:
            return list(session.exec(select(Account).order_by(Account.name)).all())

    def names(self) -> list[str]:
        return [a.name for a in self.all()]

    def get(self, name: str) -> Account | None:
        with Session(self.engine) as session:
            return session.exec(select(Account).where(Account.name == name)).first()

    def add(self, name: str, api_key: str, api_secret: str) -> Account:
        name = name.strip()
        if not name or not api_key or not api_secret:
            raise InvalidInput("Account name, API key and API secret are all required")
        with Session(self.engine) as session:
            existing = session.exec(select(Account).where(Account.name == name)).first()
            if existing:
                raise InvalidInput(f"Account {name} already exists")
            account = Account(
                name=name,
                api_key=api_key.strip(),
                api_secret_encrypted=encrypt(api_secret.strip()),
            )
            session.add(account)
            session.commit()
            session.refresh(account)
            logger.info(f"Account {name} added")
            return account

    def add_many(self, rows: list[tuple[str, str, str]]) -> tuple[list[str], list[str]]:
        """Add accounts in bulk; returns (created, skipped) names."""
        created, skipped = [], []
        for name, api_key, api_secret in rows:
            try:
                self.add(name, api_key, api_secret)
                created.append(name)
            except InvalidInput as e:
                logger.warning(f"Skipping account {name}: {e}")
                skipped.append(name)
        return created, skipped

    def delete(self, name: str):
        with Session(self.engine) as session:
            account = session.exec(select(Account).where(Account.name == name)).first()
            if not account:
                raise InvalidInput(f"Account {name} not found")
            referencing = session.exec(
                select(HedgeOrder)
                .where(HedgeOrder.status != "closed")
                .where(or_(
                    HedgeOrder.primary_account == name,
                    HedgeOrder.hedge_account == name,
                    HedgeOrder.hedge_account_2 == name,
                ))
            ).first()
            if referencing:
                raise InvalidInput(f"Account {name} is used by order {referencing.id}")
            session.delete(account)
            session.commit()

    def has_credentials(self, name: str) -> bool:
        account = self.get(name)
        return bool(account and account.api_key and account.api_secret_encrypted)

    def credentials(self, name: str) -> tuple[str, str]:
        """Return (api_key, api_secret) for an account."""
        account = self.get(name)
        if not account or not account.api_key or not account.api_secret_encrypted:
            raise CredentialsMissing(name)
        return account.api_key, decrypt(account.api_secret_encrypted)

    def record_leg(self, name: str, notional: float):
        """Count one completed leg and add its notional to the running volume."""
        stmt = (
            update(Account)
            .where(Account.name == name)
            .values(
                trade_count=Account.trade_count + 1,
                cumulative_volume=Account.cumulative_volume + abs(notional),
            )
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)


class HedgeOrderStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def all(self, status: str | None = None) -> list[HedgeOrder]:
        with Session(self.engine) as session:
            stmt = select(HedgeOrder).order_by(HedgeOrder.created_at.desc())
            if status is not None:
                stmt = stmt.where(HedgeOrder.status == status)
            return list(session.exec(stmt).all())

    def get(self, order_id: str) -> HedgeOrder | None:
        with Session(self.engine) as session:
            return session.get(HedgeOrder, order_id)

    def create(self, **fields: Any) -> HedgeOrder:
        now = datetime.now(timezone.utc)
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        order = HedgeOrder(**fields)
        with Session(self.engine) as session:
            session.add(order)
            session.commit()
            session.refresh(order)
        logger.info(f"[{order.id}] draft created: {order.symbol} {order.primary_account} vs {order.hedge_accounts}")
        return order

    def update(self, order_id: str, changes: dict[str, Any]) -> HedgeOrder:
        with Session(self.engine) as session:
            order = session.get(HedgeOrder, order_id)
            if not order:
                raise InvalidInput(f"Order {order_id} not found")
            if order.status == "open":
                raise InvalidInput("Open orders cannot be edited, close them first")
            for key, value in changes.items():
                setattr(order, key, value)
            order.updated_at = datetime.now(timezone.utc)
            session.add(order)
            session.commit()
            session.refresh(order)
            return order

    def set_status(self, order_id: str, status: str) -> HedgeOrder:
        with Session(self.engine) as session:
            order = session.get(HedgeOrder, order_id)
            if not order:
                raise InvalidInput(f"Order {order_id} not found")
            order.status = status
            order.updated_at = datetime.now(timezone.utc)
            session.add(order)
            session.commit()
            session.refresh(order)
            return order

    def delete(self, order_id: str):
        with Session(self.engine) as session:
            order = session.get(HedgeOrder, order_id)
            if not order:
                raise InvalidInput(f"Order {order_id} not found")
            if order.status == "open":
                raise InvalidInput("Open orders cannot be deleted, close them first")
            session.delete(order)
            session.commit()

    def log_attempt(
        self,
        order_id: str,
        action: str,
        status: str,
        message: str | None = None,
        legs: list[dict[str, Any]] | None = None,
        price: float | None = None,
    ):
        with Session(self.engine) as session:
            session.add(AttemptLog(
                order_id=order_id,
                action=action,
                status=status,
                message=message,
                legs=legs,
                price=price,
            ))
            session.commit()

    def attempts(self, order_id: str, limit: int = 50) -> list[AttemptLog]:
        with Session(self.engine) as session:
            stmt = (
                select(AttemptLog)
                .where(AttemptLog.order_id == order_id)
                .order_by(AttemptLog.timestamp.desc())
                .limit(limit)
            )
            return list(session.exec(stmt).all())
