"""
data_engine/search.py
─────────────────────
Ad-hoc search across the whole upstream dataset (outside any window).

Two upstream calls, both through the retrying fetcher: free-text search
for candidate ids, then a batch listing lookup for those ids.  "No
matches" is a normal, empty outcome; only a failed request sets
:attr:`SearchOutcome.error`.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from data_engine.fetcher import CoinGeckoClient
from data_engine.results import Err, FetchErrorKind
from data_engine.retrying import RetryingFetcher
from schemas.market import RankedItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchOutcome:
    query: str
    items: Tuple[RankedItem, ...] = ()
    error: Optional[FetchErrorKind] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class GlobalSearch:
    """Free-text search resolved into full, rank-sorted listings."""

    def __init__(self, client: CoinGeckoClient, fetcher: RetryingFetcher) -> None:
        self._client = client
        self._fetcher = fetcher

    async def search(self, query: str) -> SearchOutcome:
        term = query.strip()
        if not term:
            return SearchOutcome(query=term)

        ids = await self._fetcher.call(lambda: self._client.search_ids(term), label=f"search {term!r}")
        if isinstance(ids, Err):
            logger.warning("Search for %r failed: %s", term, ids.kind.value)
            return SearchOutcome(query=term, error=ids.kind)
        candidate_ids = ids.value
        if not candidate_ids:
            return SearchOutcome(query=term)

        details = await self._fetcher.call(
            lambda: self._client.fetch_markets_by_ids(candidate_ids),
            label=f"search details {term!r}",
        )
        if isinstance(details, Err):
            logger.warning("Detail lookup for %r failed: %s", term, details.kind.value)
            return SearchOutcome(query=term, error=details.kind)

        items = tuple(sorted(details.value, key=lambda i: i.rank))
        logger.info("Search %r: %d result(s)", term, len(items))
        return SearchOutcome(query=term, items=items)
