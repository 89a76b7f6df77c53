"""
tests/conftest.py
──────────────────
Shared pytest fixtures for the backend test suite.

Fixtures
--------
clock / scheduler
    Virtual time (:class:`fakes.FakeClock`) and a timer queue that only
    fires when the test calls ``await scheduler.advance(seconds)``.

upstream
    :class:`fakes.ScriptedClient` standing in for CoinGecko, so tests
    never hit the network.

engine / replicator
    Real engine and replicator wired to the fakes above.

app_client
    ``httpx.AsyncClient`` wired to the FastAPI app with ``get_engine`` and
    ``get_replicator`` overridden by the fixtures above.

Usage
-----
    async def test_health(app_client):
        resp = await app_client.get("/")
        assert resp.status_code == 200
"""

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import get_engine, get_replicator
from app.main import app
from core.storage import MemoryLocalStore
from data_engine.cache import PersistentCache
from data_engine.coordinator import WindowLoader
from data_engine.engine import SyncEngine
from data_engine.progressive import ProgressiveSyncController
from data_engine.retrying import RetryingFetcher, RetryPolicy
from data_engine.search import GlobalSearch
from fakes import FakeClock, FakeRemoteStore, ManualScheduler, ScriptedClient
from settings_sync.replicator import ConfigReplicator

WINDOW_SIZE = 500
PAGE_CAP = 250
TTL = 300.0


# ── Time ──────────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


# ── Storage / upstream ────────────────────────────────────────────────────────


@pytest.fixture
def store() -> MemoryLocalStore:
    return MemoryLocalStore(quota_bytes=5 * 1024 * 1024)


@pytest.fixture
def upstream() -> ScriptedClient:
    return ScriptedClient(total_items=10_000)


@pytest.fixture
def fetcher(upstream: ScriptedClient, clock: FakeClock) -> RetryingFetcher:
    return RetryingFetcher(upstream, RetryPolicy(), clock, page_cap=PAGE_CAP)


@pytest.fixture
def cache(store: MemoryLocalStore, clock: FakeClock) -> PersistentCache:
    return PersistentCache(store, clock)


@pytest.fixture
def loader(fetcher: RetryingFetcher, cache: PersistentCache, clock: FakeClock) -> WindowLoader:
    return WindowLoader(fetcher, cache, clock, window_size=WINDOW_SIZE, ttl=TTL)


# ── Engine / replicator ───────────────────────────────────────────────────────


@pytest.fixture
def engine(
    upstream: ScriptedClient,
    fetcher: RetryingFetcher,
    loader: WindowLoader,
    scheduler: ManualScheduler,
) -> SyncEngine:
    return SyncEngine(
        client=upstream,
        fetcher=fetcher,
        loader=loader,
        controller=ProgressiveSyncController(loader, max_total=10_000),
        search=GlobalSearch(upstream, fetcher),
        scheduler=scheduler,
        interval=30.0,
        ignored_ids=["coin-ignored"],
    )


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def replicator(
    store: MemoryLocalStore,
    remote: FakeRemoteStore,
    scheduler: ManualScheduler,
    clock: FakeClock,
) -> ConfigReplicator:
    rep = ConfigReplicator(store, remote, scheduler, clock, debounce=1.5, client_id="client-test")
    rep.load_local()
    return rep


# ── Test client ───────────────────────────────────────────────────────────────


@pytest.fixture
async def app_client(
    engine: SyncEngine,
    replicator: ConfigReplicator,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTPX client with the engine and replicator dependencies overridden.

    Startup lifespan is skipped to avoid real network and Supabase calls.
    """
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_replicator] = lambda: replicator

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
