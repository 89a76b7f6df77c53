"""
app/main.py
────────────
FastAPI application factory.

All business logic lives in ``data_engine/``, ``settings_sync/`` and the
endpoint modules under ``app/api/v1/endpoints/``.  This file only wires
together middleware, routers and lifecycle events.

API Layout
----------
GET    /                                  Health check  (no auth)
GET    /api/v1/markets                    Visible working set (?filter=)
GET    /api/v1/markets/status             Progressive loader status
GET    /api/v1/markets/windows/{index}    One window, cache-first
GET    /api/v1/markets/search?q=          Cross-dataset search
DELETE /api/v1/markets/search             Leave search mode
GET    /api/v1/markets/rank/{rank}        Rank jump
GET    /api/v1/markets/{id}/chart         Chart widget parameters
*      /api/v1/settings/...               Replicated user settings

OpenAPI docs
------------
- Swagger UI:  http://localhost:8000/docs
- ReDoc:       http://localhost:8000/redoc
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from core.clock import AsyncioScheduler, SystemClock
from core.config import get_settings
from core.database import create_supabase_client
from core.logging_config import configure_logging
from core.storage import open_local_store
from data_engine.engine import SyncEngine
from settings_sync.remote_store import SupabaseSettingsStore
from settings_sync.replicator import ConfigReplicator

logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application startup and shutdown logic.

    Startup:  Open the local store, load and pull the user settings, then
              start the sync engine (window 1 + progressive timer).
    Shutdown: Stop the engine timer and flush any pending settings push.
    """
    settings = get_settings()
    configure_logging(debug=settings.DEBUG)
    logger.info(
        "Starting %s v%s (debug=%s)",
        settings.APP_TITLE,
        settings.APP_VERSION,
        settings.DEBUG,
    )

    clock = SystemClock()
    scheduler = AsyncioScheduler()
    store = open_local_store(settings.LOCAL_STORE_DIR, settings.LOCAL_STORE_QUOTA_BYTES)

    supabase_client = await create_supabase_client(settings)
    remote = (
        SupabaseSettingsStore(supabase_client, settings.SETTINGS_TABLE)
        if supabase_client is not None
        else None
    )
    replicator = ConfigReplicator(
        store,
        remote,
        scheduler,
        clock,
        debounce=settings.CONFIG_PUSH_DEBOUNCE_SECONDS,
        client_id=settings.CLIENT_ID,
    )
    replicator.load_local()
    await replicator.pull()

    engine = SyncEngine.from_settings(settings, store, clock=clock, scheduler=scheduler)
    await engine.start()

    app.state.engine = engine
    app.state.replicator = replicator

    yield  # ← application runs here

    logger.info("Shutting down %s", settings.APP_TITLE)
    await engine.stop()
    await replicator.flush()


# ── App factory ───────────────────────────────────────────────────────────────

settings = get_settings()

app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware ────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(api_router, prefix="/api/v1")

# ── Root health-check ─────────────────────────────────────────────────────────


@app.get("/", tags=["health"], summary="Health check")
def health_check() -> dict:
    """
    Lightweight liveness probe.

    Returns:
        Status and current API version.
    """
    return {"status": "ok", "version": settings.APP_VERSION}
