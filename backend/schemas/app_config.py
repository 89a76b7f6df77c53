"""
schemas/app_config.py
─────────────────────
The user configuration object replicated between local and remote storage.

The persisted / wire form uses the camelCase keys that existing stored
rows already have (``favoriteLists``, ``coinIds``, ``hiddenCoins``,
``restoredGlobalCoins``, ``lastUpdated`` ...).  Python code uses the
snake_case attribute names; both are accepted on input.

Every load path (local storage, remote row, file import) goes through
:meth:`AppConfig.model_validate`, which

1. folds a legacy flat ``favorites`` id list into the ``General`` list, and
2. guarantees the three permanent lists exist (created empty if missing).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

GENERAL_LIST_ID = "list_general"
TO_ATH_LIST_ID = "list_to_ath"
PERFORMANCE_LIST_ID = "list_performance"

# (id, display name) of the lists that always exist and can never be removed.
PERMANENT_LISTS = (
    (GENERAL_LIST_ID, "General"),
    (TO_ATH_LIST_ID, "To Ath"),
    (PERFORMANCE_LIST_ID, "Performance"),
)
PERMANENT_LIST_IDS = frozenset(list_id for list_id, _ in PERMANENT_LISTS)

GridColumns = Literal[1, 2, 3, 4]
ViewMode = Literal["grid", "table"]
Theme = Literal["dark", "light"]
Timeframe = Literal["15", "60", "240", "D", "W", "M"]
ChartScale = Literal["log", "linear"]
MarketType = Literal["crypto", "stocks", "indices", "commodities", "nyse", "nasdaq", "eu", "hkex"]


def _unique(ids: List[str]) -> List[str]:
    """De-duplicate while keeping first-seen order."""
    return list(dict.fromkeys(ids))


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FavoriteList(_CamelModel):
    """A named set of item ids."""

    id: str = Field(..., min_length=1)
    name: str
    item_ids: List[str] = Field(default_factory=list, alias="coinIds")

    @field_validator("item_ids")
    @classmethod
    def _dedupe(cls, v: List[str]) -> List[str]:
        return _unique(v)

    @property
    def is_permanent(self) -> bool:
        return self.id in PERMANENT_LIST_IDS


class AppConfig(_CamelModel):
    """
    User preferences with a last-write-wins logical timestamp.

    Attributes:
        favorite_lists:      Ordered favorite lists.
        active_list_id:      List shown by the ``favorites`` filter.
        hidden_item_ids:     Items the user hid from the listing.
        restored_global_ids: Globally ignored items the user opted back in.
        logical_timestamp:   Milliseconds; arbiter of merge precedence.
                             ``0`` means "never mutated".
    """

    favorite_lists: List[FavoriteList] = Field(default_factory=list)
    active_list_id: str = GENERAL_LIST_ID
    hidden_item_ids: List[str] = Field(default_factory=list, alias="hiddenCoins")
    restored_global_ids: List[str] = Field(default_factory=list, alias="restoredGlobalCoins")

    # ── display preferences ───────────────────────────────────────────────
    grid_columns: GridColumns = 3
    view_mode: ViewMode = "grid"
    theme: Theme = "light"
    show_all_charts: bool = False
    timeframe: Timeframe = "M"
    chart_scale: ChartScale = "log"
    market_type: MarketType = "crypto"

    logical_timestamp: int = Field(default=0, ge=0, alias="lastUpdated")

    # ── migration ─────────────────────────────────────────────────────────

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_favorites(cls, data: Any) -> Any:
        """Fold the pre-list ``favorites`` array into the General list."""
        if not isinstance(data, dict) or "favorites" not in data:
            return data
        data = dict(data)
        legacy = data.pop("favorites")
        if not isinstance(legacy, list):
            return data

        lists = data.get("favoriteLists", data.get("favorite_lists")) or []
        has_general = any(
            (entry.get("id") if isinstance(entry, dict) else getattr(entry, "id", None))
            == GENERAL_LIST_ID
            for entry in lists
        )
        if not has_general:
            lists = [*lists, {"id": GENERAL_LIST_ID, "name": "General", "coinIds": legacy}]
        data.pop("favorite_lists", None)
        data["favoriteLists"] = lists
        return data

    @field_validator("hidden_item_ids", "restored_global_ids")
    @classmethod
    def _dedupe(cls, v: List[str]) -> List[str]:
        return _unique(v)

    @model_validator(mode="after")
    def _ensure_permanent_lists(self) -> "AppConfig":
        present = {fav.id for fav in self.favorite_lists}
        missing = [
            FavoriteList(id=list_id, name=name)
            for list_id, name in PERMANENT_LISTS
            if list_id not in present
        ]
        if missing:
            self.favorite_lists = [*self.favorite_lists, *missing]
        return self

    # ── helpers ───────────────────────────────────────────────────────────

    def get_list(self, list_id: str) -> FavoriteList:
        """
        Return the list with ``list_id``.

        Raises:
            KeyError: If no such list exists.
        """
        for fav in self.favorite_lists:
            if fav.id == list_id:
                return fav
        raise KeyError(list_id)

    def is_favorite(self, item_id: str) -> bool:
        """True if ``item_id`` is in any list."""
        return any(item_id in fav.item_ids for fav in self.favorite_lists)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using the persisted camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class PreferencesPatch(_CamelModel):
    """Request body for ``PATCH /api/v1/settings``; unset fields are ignored."""

    grid_columns: Optional[GridColumns] = None
    view_mode: Optional[ViewMode] = None
    theme: Optional[Theme] = None
    show_all_charts: Optional[bool] = None
    timeframe: Optional[Timeframe] = None
    chart_scale: Optional[ChartScale] = None
    market_type: Optional[MarketType] = None


class NewListIn(BaseModel):
    """Request body for ``POST /api/v1/settings/lists``."""

    name: str = Field(..., min_length=1, max_length=60)


class SettingsOut(BaseModel):
    """Response body for the settings endpoints."""

    status: str
    client_id: str
    settings: Dict[str, Any]
