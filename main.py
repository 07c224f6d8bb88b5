from __future__ import annotations
"""
Advisor — FastAPI Backend
==========================
Main application entry point. Defines app, lifespan, CORS, and includes
route modules. All route handlers live in advisor/routes/.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from advisor.config import (
    CORS_ORIGINS,
    DATABASE_PATH,
    LOG_LEVEL,
    MARKET_DATA_URL,
    MEMORY_SWEEP_INTERVAL_SECONDS,
)
from advisor.errors import register_error_handlers
from advisor.services import build_services

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("advisor")

# Database setup
import advisor.database as database

database.set_db_path(DATABASE_PATH)


# ---------------------------------------------------------------------------
# Lifespan (startup / shutdown)
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await database.init_db()
    print(f"Database initialized at: {DATABASE_PATH}")

    services = build_services()
    app.state.services = services

    services.memory.start_sweeper(MEMORY_SWEEP_INTERVAL_SECONDS)
    print(f"[startup] Memory window={services.memory.capacity} ttl={services.memory.ttl_seconds:.0f}s")
    print(f"[startup] Long-term memory: {'on' if services.memory.long_term is not None else 'off'}")

    # Pre-warm the market snapshot
    if MARKET_DATA_URL:
        rows = await services.market.refresh()
        print(f"[startup] Market snapshot: {len(rows)} rows")
    else:
        print("[startup] WARNING: MARKET_DATA_URL not set, answering without market data.")

    yield

    # Shutdown
    await services.memory.stop_sweeper()
    await services.fanout.drain()
    print("[shutdown] Pending writes drained.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Advisor",
    description="Streaming AI financial advisor with per-user conversational memory",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Id"],
)

register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "advisor"}


# ---------------------------------------------------------------------------
# Include route modules
# ---------------------------------------------------------------------------

from advisor.routes.advisor import router as advisor_router
from advisor.routes.sessions import router as sessions_router
from advisor.routes.stocks import router as stocks_router
from advisor.routes.auth import router as auth_router

app.include_router(advisor_router, tags=["Advisor"])
app.include_router(sessions_router, tags=["Chat Sessions"])
app.include_router(stocks_router, tags=["Stocks"])
app.include_router(auth_router, tags=["Auth"])
