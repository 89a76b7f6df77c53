"""
app/api/v1/router.py
────────────────────
Aggregates the v1 endpoint routers under their path prefixes.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import markets, settings

api_router = APIRouter()
api_router.include_router(markets.router, prefix="/markets", tags=["markets"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
