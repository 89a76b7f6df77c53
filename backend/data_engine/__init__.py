"""
data_engine — Windowed market-data fetching, caching and progressive sync.

Public API
----------
    from data_engine import SyncEngine, WindowLoader
"""

from data_engine.coordinator import WindowLoader, WindowResult
from data_engine.engine import SyncEngine
from data_engine.progressive import ProgressiveSyncController, WorkingSet

__all__ = [
    "ProgressiveSyncController",
    "SyncEngine",
    "WindowLoader",
    "WindowResult",
    "WorkingSet",
]
