"""Process-wide wiring of the engine's collaborators.

Built lazily on first use so importing the API never touches the network
or the database. Tests build their own ``Runtime`` and override
``get_runtime`` through FastAPI's dependency overrides.
"""

import logging
import random
from dataclasses import dataclass

import httpx
from sqlalchemy.engine import Engine

from hedgedesk.config import settings
from hedgedesk.engine.orchestrator import HedgeOrchestrator
from hedgedesk.engine.planner import PlannerConfig
from hedgedesk.services.aster_client import AsterClient
from hedgedesk.services.exchange_gateway import ExchangeGateway
from hedgedesk.services.live_state import LiveStateCache
from hedgedesk.services.market_data import PriceBook
from hedgedesk.services.registry import AccountRegistry, HedgeOrderStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    registry: AccountRegistry
    orders: HedgeOrderStore
    client: AsterClient
    gateway: ExchangeGateway
    live_state: LiveStateCache
    prices: PriceBook
    orchestrator: HedgeOrchestrator
    rng: random.Random


def build_runtime(
    db_engine: Engine | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> Runtime:
    if db_engine is None:
        from hedgedesk.database import engine as db_engine

    rng = rng or random.Random()
    registry = AccountRegistry(db_engine)
    orders = HedgeOrderStore(db_engine)
    client = AsterClient(
        settings.exchange_base_url,
        timeout=settings.exchange_timeout_seconds,
        recv_window=settings.exchange_recv_window,
        transport=transport,
    )
    gateway = ExchangeGateway(registry, client)
    live_state = LiveStateCache(gateway)
    prices = PriceBook()
    orchestrator = HedgeOrchestrator(
        registry,
        orders,
        gateway,
        live_state,
        prices,
        rng=rng,
        planner_config=PlannerConfig(
            margin_safety_factor=settings.margin_safety_factor,
            hedge_split_min=settings.hedge_split_min,
            hedge_split_max=settings.hedge_split_max,
        ),
        window_ms=settings.leg_time_window_ms,
    )
    return Runtime(registry, orders, client, gateway, live_state, prices, orchestrator, rng)


_runtime: Runtime | None = None


def get_runtime() -> Runtime:
    global _runtime
    if _runtime is None:
        _runtime = build_runtime()
        logger.info(f"Runtime initialized against {settings.exchange_base_url}")
    return _runtime


async def close_runtime():
    global _runtime
    if _runtime is not None:
        await _runtime.client.close()
        _runtime = None
