"""
data_engine/fetcher.py
───────────────────────
Thin wrapper around the CoinGecko REST API — the ONLY place in the
codebase that talks to the market-data provider over HTTP.

Every method performs exactly one request and classifies the outcome into
a typed result (:class:`~data_engine.results.Ok` /
:class:`~data_engine.results.Err`); retries and delays belong to
:class:`~data_engine.retrying.RetryingFetcher`.

All other modules must go through :class:`WindowLoader`,
:class:`GlobalSearch` or the REST API, not import this class directly.
"""

import logging
from typing import Any, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from data_engine.results import Err, FetchErrorKind, Ok, Result
from schemas.market import RankedItem

logger = logging.getLogger(__name__)

# How many candidate ids a free-text search resolves into full listings.
SEARCH_RESULT_LIMIT = 10


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _parse_items(payload: Any) -> Result[List[RankedItem]]:
    """Validate a markets response body into ranked items."""
    if not isinstance(payload, list):
        return Err(FetchErrorKind.MALFORMED, f"expected a JSON array, got {type(payload).__name__}")

    items: List[RankedItem] = []
    for raw in payload:
        try:
            items.append(RankedItem.model_validate(raw))
        except ValidationError:
            # Unranked listings (market_cap_rank null) cannot be ordered.
            logger.debug("Skipping unrankable item %r", raw.get("id") if isinstance(raw, dict) else raw)
    return Ok(items)


class CoinGeckoClient:
    """
    Single-request access to the provider endpoints this engine uses.

    Args:
        base_url:    API root, e.g. ``https://api.coingecko.com/api/v3``.
        vs_currency: Quote currency for market listings.
        http:        Optional pre-built ``httpx.AsyncClient`` (tests inject
                     one with a ``MockTransport``).
        timeout:     Per-request timeout in seconds.

    Example:
        >>> client = CoinGeckoClient("https://api.coingecko.com/api/v3")
        >>> result = await client.fetch_markets_page(1, per_page=250)
    """

    def __init__(
        self,
        base_url: str,
        vs_currency: str = "usd",
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 20.0,
    ) -> None:
        self.vs_currency = vs_currency
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    # ── public API ────────────────────────────────────────────────────────

    async def fetch_markets_page(self, page: int, per_page: int) -> Result[List[RankedItem]]:
        """
        Fetch one page of listings ordered by market cap (descending).

        Args:
            page:     1-based upstream page number.
            per_page: Items per page (provider maximum 250).

        Returns:
            ``Ok(items)`` in upstream order, or ``Err(kind)``.
        """
        params = {
            "vs_currency": self.vs_currency,
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": page,
            "sparkline": "false",
            "price_change_percentage": "24h,7d,30d,1y",
        }
        result = await self._get_json("/coins/markets", params)
        if isinstance(result, Err):
            return result
        return _parse_items(result.value)

    async def search_ids(self, query: str) -> Result[List[str]]:
        """
        Resolve free text into candidate item ids (best match first).

        Returns:
            ``Ok(ids)`` capped at :data:`SEARCH_RESULT_LIMIT`, possibly empty.
        """
        result = await self._get_json("/search", {"query": query})
        if isinstance(result, Err):
            return result
        body = result.value
        if not isinstance(body, dict) or not isinstance(body.get("coins", []), list):
            return Err(FetchErrorKind.MALFORMED, "search response has no 'coins' array")
        ids = [c["id"] for c in body.get("coins", []) if isinstance(c, dict) and c.get("id")]
        return Ok(ids[:SEARCH_RESULT_LIMIT])

    async def fetch_markets_by_ids(self, ids: Sequence[str]) -> Result[List[RankedItem]]:
        """Batch listing lookup for explicit ids."""
        if not ids:
            return Ok([])
        params = {
            "vs_currency": self.vs_currency,
            "ids": ",".join(ids),
            "order": "market_cap_desc",
            "sparkline": "false",
            "price_change_percentage": "24h,7d,30d,1y",
        }
        result = await self._get_json("/coins/markets", params)
        if isinstance(result, Err):
            return result
        return _parse_items(result.value)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── private helpers ───────────────────────────────────────────────────

    async def _get_json(self, path: str, params: dict) -> Result[Any]:
        try:
            resp = await self._http.get(path, params=params)
        except httpx.TransportError as exc:
            logger.warning("Transport error on %s: %s", path, exc)
            return Err(FetchErrorKind.TRANSPORT, str(exc))

        if resp.status_code == 429:
            return Err(
                FetchErrorKind.RATE_LIMITED,
                "HTTP 429",
                retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            )
        if resp.status_code >= 500:
            return Err(FetchErrorKind.SERVER_ERROR, f"HTTP {resp.status_code}")
        if not resp.is_success:
            return Err(FetchErrorKind.MALFORMED, f"HTTP {resp.status_code}")

        try:
            return Ok(resp.json())
        except ValueError:
            return Err(FetchErrorKind.MALFORMED, "response body is not JSON")
