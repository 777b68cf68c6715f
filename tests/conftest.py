"""Shared fixtures: in-memory database, encryption key and a simulated venue."""

import random

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from hedgedesk.config import settings
from hedgedesk.database import create_db_and_tables
from hedgedesk.engine.orchestrator import HedgeOrchestrator
from hedgedesk.engine.runtime import Runtime
from hedgedesk.services.encryption import reset_cipher
from hedgedesk.services.live_state import LiveStateCache
from hedgedesk.services.market_data import PriceBook
from hedgedesk.services.registry import AccountRegistry, HedgeOrderStore
from tests.fakes import FakeGateway


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    monkeypatch.setattr(settings, "encryption_key", Fernet.generate_key().decode())
    reset_cipher()
    yield
    reset_cipher()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    return engine


@pytest.fixture
def registry(db_engine):
    return AccountRegistry(db_engine)


@pytest.fixture
def order_store(db_engine):
    return HedgeOrderStore(db_engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def prices():
    book = PriceBook()
    book.update("BTC", 50000.0)
    return book


@pytest.fixture
def runtime(registry, order_store, gateway, prices):
    live_state = LiveStateCache(gateway)
    rng = random.Random(7)
    orchestrator = HedgeOrchestrator(registry, order_store, gateway, live_state, prices, rng=rng)
    return Runtime(
        registry=registry,
        orders=order_store,
        client=None,
        gateway=gateway,
        live_state=live_state,
        prices=prices,
        orchestrator=orchestrator,
        rng=rng,
    )
