"""
settings_sync/remote_store.py
─────────────────────────────
Remote persistence for the replicated user configuration.

Table layout (Supabase / PostgREST)
-----------------------------------
    create table public.app_settings (
      id bigint generated by default as identity primary key,
      created_at timestamptz not null default now(),
      settings jsonb not null default '{}'::jsonb,
      client_id text unique
    );

One row per client id; writes are upserts on ``client_id``.  The store
speaks plain dicts; parsing and merge precedence belong to
:class:`~settings_sync.replicator.ConfigReplicator`.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

logger = logging.getLogger(__name__)

# PostgREST / Postgres codes that mean "credentials rejected".
_AUTH_CODES = frozenset({"401", "403", "PGRST301", "PGRST302", "42501"})


class RemoteSyncError(Exception):
    """Base class for remote settings store failures."""


class AuthRequiredError(RemoteSyncError):
    """The remote store rejected our credentials."""


class RemoteUnavailableError(RemoteSyncError):
    """The remote store could not be reached or failed server-side."""


class RemoteSettingsStore(Protocol):
    """Keyed document store holding one settings payload per client id."""

    async def fetch(self, client_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored payload, or ``None`` if the row does not exist."""
        ...

    async def upsert(self, client_id: str, settings: Dict[str, Any]) -> None:
        """Create or replace the payload for ``client_id``."""
        ...


def _classify(exc: APIError) -> RemoteSyncError:
    code = str(exc.code or "")
    message = exc.message or str(exc)
    if code in _AUTH_CODES or "jwt" in message.lower():
        return AuthRequiredError(message)
    return RemoteUnavailableError(message)


class SupabaseSettingsStore:
    """
    :class:`RemoteSettingsStore` backed by a Supabase table.

    Args:
        client: Async Supabase client from :func:`core.database.create_supabase_client`.
        table:  Table name (``SETTINGS_TABLE``).
    """

    def __init__(self, client: AsyncClient, table: str = "app_settings") -> None:
        self._client = client
        self.table = table

    async def fetch(self, client_id: str) -> Optional[Dict[str, Any]]:
        try:
            res = await (
                self._client.table(self.table)
                .select("settings")
                .eq("client_id", client_id)
                .limit(1)
                .execute()
            )
        except APIError as exc:
            raise _classify(exc) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(str(exc)) from exc

        if not res.data:
            return None
        settings = res.data[0].get("settings")
        return settings if isinstance(settings, dict) else None

    async def upsert(self, client_id: str, settings: Dict[str, Any]) -> None:
        try:
            await (
                self._client.table(self.table)
                .upsert({"client_id": client_id, "settings": settings}, on_conflict="client_id")
                .execute()
            )
        except APIError as exc:
            raise _classify(exc) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(str(exc)) from exc
        logger.debug("Upserted settings for client %s", client_id)
