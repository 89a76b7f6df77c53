"""
core/database.py
────────────────
Supabase client factory for the remote settings store.

The client is created once by the application lifespan and handed to
:class:`~settings_sync.remote_store.SupabaseSettingsStore`.  All database
interaction must go through that store — never call ``acreate_client``
elsewhere.

Remote sync is optional: when ``SUPABASE_URL`` or ``SUPABASE_KEY`` is
empty no client is created and the settings replicator runs offline.

Usage
-----
    from core.config import get_settings
    from core.database import create_supabase_client

    client = await create_supabase_client(get_settings())
"""

import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from core.config import Settings

logger = logging.getLogger(__name__)


async def create_supabase_client(settings: Settings) -> Optional[AsyncClient]:
    """
    Create the async Supabase client used for settings replication.

    Args:
        settings: Validated application configuration.

    Returns:
        Async Supabase ``AsyncClient``, or ``None`` when remote sync is
        not configured.
    """
    if not settings.REMOTE_SYNC_ENABLED:
        logger.info("Supabase credentials not set — settings sync stays offline")
        return None

    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
    logger.info("Supabase client initialised (url=%s)", settings.SUPABASE_URL)
    return client
