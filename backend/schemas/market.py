"""
schemas/market.py
─────────────────
Pydantic models for ranked market listings and their cache envelope.

Only the fields the engine relies on are declared: a stable ``id``, the
``rank`` (wire name ``market_cap_rank``) that defines the total order, and
``last_updated``.  Every other provider field (price, supply, ATH, ...) is
carried through untouched as an extra field.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RankedItem(BaseModel):
    """One listing from the upstream provider."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    rank: int = Field(..., gt=0, alias="market_cap_rank")
    last_updated: Optional[str] = None

    def payload(self, field: str) -> object:
        """Return an opaque provider field, or ``None`` when absent."""
        return (self.model_extra or {}).get(field)

    def to_wire(self) -> dict:
        """Serialise with provider field names (for caching / responses)."""
        return self.model_dump(by_alias=True)


class CacheEntry(BaseModel):
    """A cached window: the merged items and when they were fetched."""

    key: str
    data: List[RankedItem]
    fetched_at: float


class LoadSource(str, Enum):
    """Where the items of a window load came from."""

    FRESH_CACHE = "fresh_cache"
    NETWORK = "network"
    PARTIAL = "partial"
    STALE_CACHE = "stale_cache"
    EMPTY = "empty"


class WindowOut(BaseModel):
    """Response body for ``GET /api/v1/markets/windows/{index}``."""

    window_index: int
    source: LoadSource
    count: int
    items: List[dict]


class SyncStatusOut(BaseModel):
    """Response body for ``GET /api/v1/markets/status``."""

    state: str
    loaded_windows: List[int]
    total_loaded: int
    working_set_size: int
    busy: bool
    exhausted: bool


class SearchOut(BaseModel):
    """Response body for ``GET /api/v1/markets/search``."""

    query: str
    count: int
    items: List[dict]


class MarketListOut(BaseModel):
    """Response body for ``GET /api/v1/markets``."""

    filter: str
    count: int
    items: List[dict]
