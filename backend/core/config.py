"""
core/config.py
──────────────
Sync engine and replication settings, read by ``pydantic-settings``.

Values come from the process environment first, then ``backend/.env``.
Window sizes, retry delays and quotas are range-checked when the object
is built, so a bad deployment value stops the app at import time.

Usage
-----
    from core.config import get_settings

    settings = get_settings()
    print(settings.WINDOW_SIZE)
"""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the backend/ directory so relative .env paths work from any cwd.
_BACKEND_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables / ``.env`` file.

    Attributes:
        UPSTREAM_BASE_URL:   Market-data provider root (CoinGecko v3).
        UPSTREAM_PAGE_CAP:   Max items the provider returns per request.
        WINDOW_SIZE:         Items per logical window (fixed per session).
        MAX_TOTAL_ITEMS:     Upper bound for the progressive working set.
        CACHE_TTL_SECONDS:   Age after which a cached window is stale.
        LOCAL_STORE_DIR:     Directory for the persistent key/value store.
                             Empty string keeps everything in memory.
        SUPABASE_URL:        Supabase project URL (optional).
        SUPABASE_KEY:        Supabase anon or service-role key (optional).
        CLIENT_ID:           Pin the remote settings row; generated if empty.
    """

    model_config = SettingsConfigDict(
        env_file=str(_BACKEND_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        # Extra env vars are ignored — don't raise on unexpected keys.
        extra="ignore",
    )

    # ── API metadata ──────────────────────────────────────────────────────
    APP_TITLE: str = "Market Snapshot Sync API"
    APP_VERSION: str = "0.3.0"
    APP_DESCRIPTION: str = (
        "Cached, progressively loaded market listings ranked by market cap, "
        "plus user settings replicated between local and remote storage."
    )

    # ── Feature flags ─────────────────────────────────────────────────────
    DEBUG: bool = False

    # ── Upstream provider ─────────────────────────────────────────────────
    UPSTREAM_BASE_URL: str = "https://api.coingecko.com/api/v3"
    UPSTREAM_VS_CURRENCY: str = "usd"
    UPSTREAM_PAGE_CAP: int = Field(default=250, ge=1, le=250)
    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)

    # ── Windowing / progressive loading ───────────────────────────────────
    WINDOW_SIZE: int = Field(default=500, ge=1)
    MAX_TOTAL_ITEMS: int = Field(default=10_000, ge=1, le=10_000)
    PROGRESSIVE_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    CACHE_TTL_SECONDS: float = Field(default=300.0, gt=0)

    # ── Retry policy ──────────────────────────────────────────────────────
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=2)
    RATE_LIMIT_DELAY_SECONDS: float = Field(default=2.0, ge=0)
    SERVER_ERROR_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    RETRY_DELAY_SECONDS: float = Field(default=3.0, ge=0)
    POLITENESS_DELAY_SECONDS: float = Field(default=1.5, ge=0)

    # ── Local storage ─────────────────────────────────────────────────────
    LOCAL_STORE_DIR: str = str(_BACKEND_DIR / ".local_store")
    LOCAL_STORE_QUOTA_BYTES: int = Field(default=5 * 1024 * 1024, ge=1024)
    CACHE_NAMESPACE: str = "pmcrypto_cache_"

    # ── Settings replication (Supabase, optional) ─────────────────────────
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SETTINGS_TABLE: str = "app_settings"
    CLIENT_ID: str = ""
    CONFIG_PUSH_DEBOUNCE_SECONDS: float = Field(default=1.5, ge=0)

    # ── Listing filters ───────────────────────────────────────────────────
    # Ids hidden for every user unless individually restored.
    GLOBAL_IGNORED_IDS: List[str] = Field(default_factory=list)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Optional extra origin injected by the hosting environment.
    FRONTEND_URL: str = ""

    @property
    def REMOTE_SYNC_ENABLED(self) -> bool:
        """True when both Supabase credentials are configured."""
        return bool(self.SUPABASE_URL and self.SUPABASE_KEY)

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Local dev origins, plus ``FRONTEND_URL`` when it is set.
        """
        origins: List[str] = [
            "http://localhost:5173",   # Vite / React dev server
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
        if self.FRONTEND_URL:
            origins.append(self.FRONTEND_URL)
        return origins

    @model_validator(mode="after")
    def _window_fits_total(self) -> "Settings":
        """Raise if a single window is larger than the whole working set."""
        if self.WINDOW_SIZE > self.MAX_TOTAL_ITEMS:
            raise ValueError("WINDOW_SIZE must not exceed MAX_TOTAL_ITEMS")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process-wide ``Settings``; the ``.env`` file is parsed on first call only.
    """
    return Settings()
