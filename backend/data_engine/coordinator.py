"""
data_engine/coordinator.py
───────────────────────────
Cache-first window loader — the SINGLE entry point for windowed market data.

Workflow (per ``load`` call)
----------------------------
1. Resolve the cache key for the window.  A fresh entry is returned
   without touching the network.
2. Otherwise plan the upstream pages (:func:`plan_chunks`) and fetch them
   **sequentially** through the :class:`RetryingFetcher`, concatenating
   chunk results in chunk order.  An empty chunk means the dataset ended;
   remaining chunks are skipped.
3. If every chunk succeeded, write the merged window to the cache and
   return it.
4. On the first chunk that fails terminally, stop requesting and degrade:
   stale cache → chunks fetched so far (not cached) → empty.

``load`` never raises for upstream failures; callers see the degrade
decision through :attr:`WindowResult.source`.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.clock import Clock
from data_engine.cache import PersistentCache
from data_engine.chunking import plan_chunks
from data_engine.results import Err
from data_engine.retrying import RetryingFetcher
from schemas.market import LoadSource, RankedItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowResult:
    window_index: int
    items: Tuple[RankedItem, ...]
    source: LoadSource

    @property
    def is_complete(self) -> bool:
        """True when the items are a whole window (fresh, cached or refetched)."""
        return self.source in (LoadSource.FRESH_CACHE, LoadSource.NETWORK, LoadSource.STALE_CACHE)


class WindowLoader:
    """
    Loads one logical window of ranked items.

    Args:
        fetcher:     Retrying upstream fetcher (its ``page_cap`` drives chunking).
        cache:       Persistent window cache.
        clock:       Time source for freshness checks.
        window_size: Items per window (fixed for the session).
        ttl:         Seconds a cached window counts as fresh.

    Example:
        >>> loader = WindowLoader(fetcher, cache, clock, window_size=500, ttl=300)
        >>> items = await loader.load(1)   # ranks 1..500
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        cache: PersistentCache,
        clock: Clock,
        window_size: int,
        ttl: float,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache
        self._clock = clock
        self.window_size = window_size
        self.ttl = ttl

    def cache_key(self, window_index: int) -> str:
        """Key includes the window size so a resized session never reuses entries."""
        return f"window_{self.window_size}_{window_index}"

    # ── public API ────────────────────────────────────────────────────────

    async def load(self, window_index: int) -> List[RankedItem]:
        """Return the window's items in rank order; never raises for upstream failures."""
        result = await self.load_result(window_index)
        return list(result.items)

    async def load_result(self, window_index: int) -> WindowResult:
        """
        Load ``window_index`` and report where the items came from.

        Args:
            window_index: 1-based window number.

        Returns:
            :class:`WindowResult` with the items and their :class:`LoadSource`.
        """
        key = self.cache_key(window_index)
        cached = self._cache.read(key)
        if cached is not None and self._cache.is_fresh(cached, self.ttl, self._clock.now()):
            logger.debug("Window %d served from fresh cache (%d items)", window_index, len(cached.data))
            return WindowResult(window_index, tuple(cached.data), LoadSource.FRESH_CACHE)

        fetched: List[RankedItem] = []
        failure: Optional[Err] = None
        pages = plan_chunks(window_index, self.window_size, self._fetcher.page_cap)

        for page in pages:
            outcome = await self._fetcher.fetch(page)
            if isinstance(outcome, Err):
                failure = outcome
                break
            fetched.extend(outcome.value)
            if not outcome.value:
                # Upstream ran out of items; later pages would be empty too.
                break

        if failure is None:
            self._cache.write(key, fetched)
            logger.info("Window %d fetched: %d items from %d page(s)", window_index, len(fetched), len(pages))
            return WindowResult(window_index, tuple(fetched), LoadSource.NETWORK)

        # ── degrade ──────────────────────────────────────────────────────
        if cached is not None:
            logger.warning(
                "Window %d fetch failed (%s); serving stale cache from %.0fs ago",
                window_index,
                failure.kind.value,
                self._clock.now() - cached.fetched_at,
            )
            return WindowResult(window_index, tuple(cached.data), LoadSource.STALE_CACHE)

        if fetched:
            logger.warning(
                "Window %d fetch failed (%s); returning %d partial items uncached",
                window_index,
                failure.kind.value,
                len(fetched),
            )
            return WindowResult(window_index, tuple(fetched), LoadSource.PARTIAL)

        logger.error("Window %d unavailable (%s) and nothing cached", window_index, failure.kind.value)
        return WindowResult(window_index, (), LoadSource.EMPTY)
