"""
app/api/dependencies.py
───────────────────────
FastAPI dependency functions shared across all endpoints.

The engine and the replicator are built once by the application lifespan
and stored on ``app.state``; tests replace them through
``app.dependency_overrides``.

Usage
-----
    from app.api.dependencies import get_engine

    @router.get("/foo")
    async def my_route(engine: SyncEngine = Depends(get_engine)):
        ...
"""

from fastapi import HTTPException, Request

from data_engine.engine import SyncEngine
from settings_sync.replicator import ConfigReplicator


def get_engine(request: Request) -> SyncEngine:
    """
    FastAPI dependency that returns the process-wide :class:`SyncEngine`.

    Raises:
        HTTPException 503: If the lifespan has not built the engine yet.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Market data engine is not running")
    return engine


def get_replicator(request: Request) -> ConfigReplicator:
    """FastAPI dependency that returns the settings :class:`ConfigReplicator`."""
    replicator = getattr(request.app.state, "replicator", None)
    if replicator is None:
        raise HTTPException(status_code=503, detail="Settings replication is not running")
    return replicator
