"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hedgedesk.config import settings
from hedgedesk.database import create_db_and_tables
from hedgedesk.utils.logging import setup_logging
from hedgedesk.api import auth, accounts, orders, dashboard, markets, system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    # Load prices and account state before the first request needs them
    from hedgedesk.engine.scheduler import (
        run_account_refresh,
        run_price_refresh,
        start_scheduler,
        stop_scheduler,
    )
    from hedgedesk.engine.runtime import close_runtime
    await run_price_refresh()
    await run_account_refresh()
    start_scheduler()

    yield

    stop_scheduler()
    await close_runtime()


app = FastAPI(
    title="Hedge Desk",
    description="Delta-neutral hedge trades across exchange accounts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(auth.router)
app.include_router(accounts.router)
app.include_router(orders.router)
app.include_router(dashboard.router)
app.include_router(markets.router)
app.include_router(system.router)
