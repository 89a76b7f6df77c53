"""
data_engine/views.py
────────────────────
Config-driven projections of the working set for display.

Nothing here fetches or mutates; every function returns a new list.
"""

from typing import AbstractSet, Iterable, List, Literal

from schemas.app_config import AppConfig
from schemas.chart import ChartSpec, ChartType
from schemas.market import RankedItem

FilterMode = Literal["all", "favorites", "gainers", "ath_drop"]


def _as_float(value: object, default: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return default


def visible_items(
    items: Iterable[RankedItem],
    config: AppConfig,
    ignored_ids: AbstractSet[str] = frozenset(),
) -> List[RankedItem]:
    """
    Drop what the user should not see.

    Args:
        items:       Rank-ordered items (working set or search results).
        config:      Current user configuration.
        ignored_ids: Globally ignored ids; shown only if the user restored them.

    Returns:
        Items in their original order.
    """
    hidden = set(config.hidden_item_ids)
    restored = set(config.restored_global_ids)
    return [
        item
        for item in items
        if item.id not in hidden and (item.id not in ignored_ids or item.id in restored)
    ]


def apply_filter(items: Iterable[RankedItem], config: AppConfig, mode: FilterMode = "all") -> List[RankedItem]:
    """
    Apply one of the listing filters.

    ``favorites`` keeps members of the active list (all items if the active
    list no longer exists); ``gainers`` orders by 24h change, missing values
    last; ``ath_drop`` orders by distance from all-time high, missing as 0.
    """
    result = list(items)
    if mode == "favorites":
        try:
            members = set(config.get_list(config.active_list_id).item_ids)
        except KeyError:
            return result
        return [item for item in result if item.id in members]
    if mode == "gainers":
        return sorted(
            result,
            key=lambda i: _as_float(i.payload("price_change_percentage_24h"), float("-inf")),
            reverse=True,
        )
    if mode == "ath_drop":
        return sorted(result, key=lambda i: _as_float(i.payload("ath_change_percentage"), 0.0))
    return result


def chart_spec(
    item: RankedItem,
    config: AppConfig,
    visible: bool,
    chart_type: ChartType = "price",
) -> ChartSpec:
    """Describe the chart for ``item`` in the user's current display settings."""
    symbol = str(item.payload("symbol") or item.id).upper()
    return ChartSpec(
        symbol=f"CRYPTOCAP:{symbol}" if chart_type == "market_cap" else f"{symbol}USDT",
        interval=config.timeframe,
        scale=config.chart_scale,
        theme=config.theme,
        visible=visible,
    )
