"""
data_engine/engine.py
─────────────────────
Composition root for the market-data side of the API.

:class:`SyncEngine` wires the upstream client, retrying fetcher, window
cache, window loader, global search and progressive controller together
and owns their lifecycle: ``start`` bootstraps window 1 and arms the
progressive timer, ``stop`` cancels it and closes the HTTP client.

One engine is built per process by the FastAPI lifespan and stored on
``app.state``; endpoints reach it through
:func:`app.api.dependencies.get_engine`.
"""

import logging
from typing import FrozenSet, Iterable, Optional

import httpx

from core.clock import AsyncioScheduler, Clock, Scheduler, SystemClock, TimerHandle
from core.config import Settings
from core.storage import LocalStore
from data_engine.cache import PersistentCache
from data_engine.chunking import window_for_rank
from data_engine.coordinator import WindowLoader, WindowResult
from data_engine.fetcher import CoinGeckoClient
from data_engine.progressive import ControllerStatus, ProgressiveSyncController, WorkingSet
from data_engine.retrying import RetryingFetcher, RetryPolicy
from data_engine.search import GlobalSearch, SearchOutcome
from schemas.market import RankedItem

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Market-data facade used by the HTTP layer.

    Prefer :meth:`from_settings`; the constructor takes already-built parts
    so tests can assemble an engine around fakes.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        fetcher: RetryingFetcher,
        loader: WindowLoader,
        controller: ProgressiveSyncController,
        search: GlobalSearch,
        scheduler: Scheduler,
        interval: float,
        ignored_ids: Iterable[str] = (),
    ) -> None:
        self.client = client
        self.fetcher = fetcher
        self.loader = loader
        self.controller = controller
        self._search = search
        self._scheduler = scheduler
        self.interval = interval
        self.ignored_ids: FrozenSet[str] = frozenset(ignored_ids)
        self.last_search: Optional[SearchOutcome] = None
        self._timer: Optional[TimerHandle] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: LocalStore,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> "SyncEngine":
        """
        Build an engine from validated configuration.

        Args:
            settings:  Application settings.
            store:     Local key/value store shared with the settings replicator.
            clock:     Time source (defaults to :class:`SystemClock`).
            scheduler: Timer factory (defaults to :class:`AsyncioScheduler`).
            http:      Pre-built HTTP client, mainly for tests.
        """
        clock = clock or SystemClock()
        scheduler = scheduler or AsyncioScheduler()

        client = CoinGeckoClient(
            settings.UPSTREAM_BASE_URL,
            vs_currency=settings.UPSTREAM_VS_CURRENCY,
            http=http,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
        policy = RetryPolicy(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            rate_limit_delay=settings.RATE_LIMIT_DELAY_SECONDS,
            server_error_delay=settings.SERVER_ERROR_DELAY_SECONDS,
            retry_delay=settings.RETRY_DELAY_SECONDS,
            politeness_delay=settings.POLITENESS_DELAY_SECONDS,
        )
        fetcher = RetryingFetcher(client, policy, clock, page_cap=settings.UPSTREAM_PAGE_CAP)
        cache = PersistentCache(store, clock, namespace=settings.CACHE_NAMESPACE)
        loader = WindowLoader(
            fetcher,
            cache,
            clock,
            window_size=settings.WINDOW_SIZE,
            ttl=settings.CACHE_TTL_SECONDS,
        )
        return cls(
            client=client,
            fetcher=fetcher,
            loader=loader,
            controller=ProgressiveSyncController(loader, max_total=settings.MAX_TOTAL_ITEMS),
            search=GlobalSearch(client, fetcher),
            scheduler=scheduler,
            interval=settings.PROGRESSIVE_INTERVAL_SECONDS,
            ignored_ids=settings.GLOBAL_IGNORED_IDS,
        )

    # ── lifecycle ─────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._timer is not None

    async def start(self) -> None:
        """Load window 1, then tick every ``interval`` seconds."""
        if self.running:
            return
        await self.controller.bootstrap()
        self._timer = self._scheduler.call_every(self.interval, self.controller.tick)
        logger.info("Progressive loading every %.0fs", self.interval)

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        drain = getattr(self._scheduler, "drain", None)
        if drain is not None:
            await drain()
        await self.client.aclose()
        logger.info("Sync engine stopped")

    # ── reads ─────────────────────────────────────────────────────────────

    @property
    def working_set(self) -> WorkingSet:
        return self.controller.working_set

    def status(self) -> ControllerStatus:
        return self.controller.status()

    async def load_window(self, window_index: int) -> WindowResult:
        """Load a window through the cache without merging it into the working set."""
        if window_index < 1:
            raise ValueError(f"window_index must be >= 1, got {window_index}")
        return await self.controller.load_unmerged(window_index)

    # ── search mode / navigation ──────────────────────────────────────────

    async def search(self, query: str) -> SearchOutcome:
        """Enter search mode and run ``query`` across the whole dataset."""
        self.controller.suspend()
        outcome = await self._search.search(query)
        self.last_search = outcome
        return outcome

    def clear_search(self) -> None:
        self.last_search = None
        self.controller.resume()

    async def jump_to_rank(self, rank: int) -> Optional[RankedItem]:
        """
        Make sure the window holding ``rank`` is loaded and return that item.

        Returns:
            The item, or ``None`` when upstream has nothing at that rank.
        """
        found = self.working_set.find_rank(rank)
        if found is not None:
            return found
        await self.controller.ensure_window(window_for_rank(rank, self.loader.window_size))
        return self.working_set.find_rank(rank)
