"""
Pydantic schemas for request/response serialization.

Separate from the engine (data layer) and routes (HTTP layer).
"""

from schemas.app_config import AppConfig, FavoriteList, PreferencesPatch
from schemas.chart import ChartSpec
from schemas.market import CacheEntry, LoadSource, RankedItem

__all__ = [
    "AppConfig",
    "CacheEntry",
    "ChartSpec",
    "FavoriteList",
    "LoadSource",
    "PreferencesPatch",
    "RankedItem",
]
