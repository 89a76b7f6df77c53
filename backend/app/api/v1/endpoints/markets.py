"""
app/api/v1/endpoints/markets.py
────────────────────────────────
Market listing endpoints.

Routes
------
GET    /api/v1/markets                    Visible working set (?filter=...).
GET    /api/v1/markets/status             Progressive loader status.
GET    /api/v1/markets/windows/{index}    One window, cache-first.
GET    /api/v1/markets/search?q=...       Search the whole dataset (search mode).
DELETE /api/v1/markets/search             Leave search mode.
GET    /api/v1/markets/rank/{rank}        Jump to a rank, loading its window.
GET    /api/v1/markets/{item_id}/chart    Chart widget parameters.

IMPORTANT: the literal paths are registered BEFORE /{item_id}/chart so
FastAPI does not interpret them as item ids.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response

from app.api.dependencies import get_engine, get_replicator
from data_engine.engine import SyncEngine
from data_engine.views import FilterMode, apply_filter, chart_spec, visible_items
from schemas.chart import ChartSpec, ChartType
from schemas.market import MarketListOut, RankedItem, SearchOut, SyncStatusOut, WindowOut
from settings_sync.replicator import ConfigReplicator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=MarketListOut, summary="Visible market listings")
async def list_markets(
    filter: FilterMode = Query(default="all", description="all | favorites | gainers | ath_drop"),
    engine: SyncEngine = Depends(get_engine),
    replicator: ConfigReplicator = Depends(get_replicator),
) -> MarketListOut:
    """
    Return the working set as the user should see it.

    Hidden items and globally ignored items (unless restored) are removed,
    then the requested filter is applied.
    """
    config = replicator.config
    items = visible_items(engine.working_set, config, engine.ignored_ids)
    items = apply_filter(items, config, filter)
    return MarketListOut(filter=filter, count=len(items), items=[i.to_wire() for i in items])


@router.get("/status", response_model=SyncStatusOut, summary="Progressive loader status")
async def sync_status(engine: SyncEngine = Depends(get_engine)) -> SyncStatusOut:
    status = engine.status()
    return SyncStatusOut(
        state=status.state.value,
        loaded_windows=list(status.loaded_windows),
        total_loaded=status.total_loaded,
        working_set_size=status.working_set_size,
        busy=status.busy,
        exhausted=status.exhausted,
    )


@router.get("/windows/{index}", response_model=WindowOut, summary="Load one window")
async def get_window(
    index: int = Path(..., ge=1, description="1-based window number."),
    engine: SyncEngine = Depends(get_engine),
) -> WindowOut:
    """
    Return window ``index`` (fresh cache, network, or a degraded source).

    Upstream failures never produce an error status; inspect ``source``.
    """
    result = await engine.load_window(index)
    return WindowOut(
        window_index=result.window_index,
        source=result.source,
        count=len(result.items),
        items=[i.to_wire() for i in result.items],
    )


@router.get("/search", response_model=SearchOut, summary="Search the whole dataset")
async def search_markets(
    q: str = Query(..., min_length=1, max_length=50, description="Name or symbol to search."),
    engine: SyncEngine = Depends(get_engine),
    replicator: ConfigReplicator = Depends(get_replicator),
) -> SearchOut:
    """
    Enter search mode and return matching listings sorted by rank.

    Progressive loading stays suspended until ``DELETE /markets/search``.

    Raises:
        HTTPException 502: The upstream search request failed after retries.
    """
    outcome = await engine.search(q)
    if outcome.failed:
        raise HTTPException(
            status_code=502,
            detail=f"Search failed upstream ({outcome.error.value}); please retry in a moment.",
        )
    items = visible_items(outcome.items, replicator.config, engine.ignored_ids)
    return SearchOut(query=outcome.query, count=len(items), items=[i.to_wire() for i in items])


@router.delete("/search", status_code=204, summary="Leave search mode")
async def clear_search(engine: SyncEngine = Depends(get_engine)) -> Response:
    engine.clear_search()
    return Response(status_code=204)


@router.get("/rank/{rank}", summary="Jump to a rank")
async def jump_to_rank(
    rank: int = Path(..., ge=1),
    engine: SyncEngine = Depends(get_engine),
) -> dict:
    """
    Return the item at ``rank``, loading its window first if needed.

    Raises:
        HTTPException 404: Upstream has no item at that rank.
    """
    item = await engine.jump_to_rank(rank)
    if item is None:
        raise HTTPException(status_code=404, detail=f"No listing found at rank {rank}.")
    return item.to_wire()


@router.get("/{item_id}/chart", response_model=ChartSpec, summary="Chart parameters for an item")
async def get_chart(
    item_id: str,
    visible: bool = Query(default=True, description="Whether the chart region is on screen."),
    chart_type: ChartType = Query(default="price"),
    engine: SyncEngine = Depends(get_engine),
    replicator: ConfigReplicator = Depends(get_replicator),
) -> ChartSpec:
    """
    Return the chart widget parameters for ``item_id``.

    ``visible`` is echoed back unchanged.

    Raises:
        HTTPException 404: Item is neither in the working set nor in the
            current search results.
    """
    item = engine.working_set.get(item_id) or _from_search(engine, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' is not loaded.")
    return chart_spec(item, replicator.config, visible, chart_type)


def _from_search(engine: SyncEngine, item_id: str) -> Optional[RankedItem]:
    if engine.last_search is None:
        return None
    return next((i for i in engine.last_search.items if i.id == item_id), None)
