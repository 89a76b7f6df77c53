"""
settings_sync/replicator.py
───────────────────────────
Last-write-wins replication of :class:`~schemas.app_config.AppConfig`
between the local store and a remote store.

Write path (``mutate``)
-----------------------
1. Apply the patch to a copy of the current config.
2. Stamp ``logical_timestamp = max(now_ms, previous + 1)`` so every
   mutation is strictly newer than the one before it, even if the wall
   clock stalls or goes backwards.
3. Persist to the local store synchronously.
4. (Re)arm the debounced remote push.  Rapid edits collapse into one push
   of the latest config; the timer is reset, never stacked.

Read path (``pull`` / ``merge``)
--------------------------------
A remote config replaces the local one only if its timestamp is strictly
greater.  A tie keeps local.  If local is strictly newer, a push is
scheduled so the remote eventually catches up.

Remote failures never propagate: they are logged and reflected in
:attr:`ConfigReplicator.status`; local data is always retained.
"""

import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from core.clock import Clock, Scheduler, TimerHandle
from core.storage import LocalStore, QuotaExceededError
from schemas.app_config import GENERAL_LIST_ID, PERMANENT_LIST_IDS, AppConfig, FavoriteList, PreferencesPatch
from settings_sync.remote_store import AuthRequiredError, RemoteSettingsStore, RemoteSyncError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "pmcrypto_settings"
CLIENT_ID_KEY = "pmcrypto_client_id"

ConfigPatch = Union[Dict[str, Any], Callable[[AppConfig], Dict[str, Any]]]


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    OFFLINE = "offline"


class PermanentListError(Exception):
    """Raised when trying to delete one of the built-in favorite lists."""


class InvalidConfigImport(ValueError):
    """Raised when an imported settings document is not usable."""


class ConfigReplicator:
    """
    Owns the current :class:`AppConfig` and keeps local and remote in step.

    Args:
        store:     Local key/value store (shared with the window cache).
        remote:    Remote settings store, or ``None`` to run offline.
        scheduler: Timer factory for the debounced push.
        clock:     Time source for logical timestamps.
        debounce:  Seconds of quiet before a push is sent.
        client_id: Pinned remote row id; generated and persisted if empty.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: Optional[RemoteSettingsStore],
        scheduler: Scheduler,
        clock: Clock,
        debounce: float = 1.5,
        client_id: str = "",
    ) -> None:
        self._store = store
        self._remote = remote
        self._scheduler = scheduler
        self._clock = clock
        self.debounce = debounce
        self.config = AppConfig()
        self.status = SyncStatus.OFFLINE if remote is None else SyncStatus.SYNCED
        self._push_timer: Optional[TimerHandle] = None
        self.client_id = client_id or self._stored_client_id()

    # ── identity / local persistence ──────────────────────────────────────

    def _stored_client_id(self) -> str:
        existing = self._store.get(CLIENT_ID_KEY)
        if existing:
            return existing
        generated = str(uuid4())
        try:
            self._store.set(CLIENT_ID_KEY, generated)
        except QuotaExceededError:
            logger.warning("Could not persist client id; a new one will be generated next start")
        logger.info("Generated client id %s", generated)
        return generated

    def load_local(self) -> AppConfig:
        """Load the persisted config, falling back to defaults if absent or invalid."""
        raw = self._store.get(SETTINGS_KEY)
        if raw is None:
            self.config = AppConfig()
            return self.config
        try:
            self.config = AppConfig.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Stored settings are invalid, using defaults: %s", exc.errors()[:1])
            self.config = AppConfig()
        return self.config

    def _persist_local(self) -> None:
        try:
            self._store.set(SETTINGS_KEY, json.dumps(self.config.to_wire(), separators=(",", ":")))
        except QuotaExceededError:
            logger.error("Local store is full; settings kept in memory only")

    # ── write path ────────────────────────────────────────────────────────

    def mutate(self, patch: ConfigPatch) -> AppConfig:
        """
        Apply ``patch`` (a field dict, or a function of the current config
        returning one) and replicate the result.

        Raises:
            pydantic.ValidationError: If the patched config is invalid.
        """
        current = self.config
        changes = patch(current) if callable(patch) else patch
        updated = AppConfig.model_validate({**current.model_dump(), **changes})
        return self._commit(updated)

    def _commit(self, updated: AppConfig) -> AppConfig:
        now_ms = int(self._clock.now() * 1000)
        stamp = max(now_ms, self.config.logical_timestamp + 1)
        self.config = updated.model_copy(update={"logical_timestamp": stamp})
        self._persist_local()
        self._schedule_push()
        return self.config

    def _schedule_push(self) -> None:
        if self._remote is None:
            self.status = SyncStatus.OFFLINE
            return
        if self._push_timer is not None:
            self._push_timer.cancel()
        self.status = SyncStatus.PENDING
        self._push_timer = self._scheduler.call_later(self.debounce, self._push)

    async def _push(self) -> None:
        self._push_timer = None
        if self._remote is None:
            return
        snapshot = self.config
        try:
            await self._remote.upsert(self.client_id, snapshot.to_wire())
        except AuthRequiredError as exc:
            logger.error("Settings push rejected, check SUPABASE_KEY: %s", exc)
            self.status = SyncStatus.ERROR
            return
        except RemoteSyncError as exc:
            logger.warning("Settings push failed, will retry on next change: %s", exc)
            self.status = SyncStatus.ERROR
            return
        if self._push_timer is None:
            self.status = SyncStatus.SYNCED
        logger.debug("Pushed settings (lastUpdated=%d)", snapshot.logical_timestamp)

    async def flush(self) -> None:
        """Send a pending push now instead of waiting for the debounce."""
        if self._push_timer is None:
            return
        self._push_timer.cancel()
        await self._push()

    # ── read path ─────────────────────────────────────────────────────────

    async def pull(self) -> bool:
        """
        Fetch the remote config for this client and merge it.

        Returns:
            ``True`` if the remote config replaced the local one.
        """
        if self._remote is None:
            self.status = SyncStatus.OFFLINE
            return False
        try:
            payload = await self._remote.fetch(self.client_id)
        except RemoteSyncError as exc:
            logger.warning("Settings pull failed: %s", exc)
            self.status = SyncStatus.ERROR
            return False

        if payload is None:
            # No row yet; it is created by the first push.
            if self.config.logical_timestamp > 0:
                self._schedule_push()
            else:
                self.status = SyncStatus.SYNCED
            return False

        try:
            remote_config = AppConfig.model_validate(payload)
        except ValidationError:
            logger.warning("Remote settings for %s are invalid; keeping local", self.client_id)
            self._schedule_push()
            return False
        return self.merge(remote_config)

    def merge(self, source: AppConfig) -> bool:
        """
        Last-write-wins merge of ``source`` into the local config.

        Returns:
            ``True`` if ``source`` was adopted.
        """
        local = self.config
        if source.logical_timestamp > local.logical_timestamp:
            logger.info(
                "Applying remote settings (remote %d > local %d)",
                source.logical_timestamp,
                local.logical_timestamp,
            )
            self.config = source
            self._persist_local()
            if self._push_timer is None and self._remote is not None:
                self.status = SyncStatus.SYNCED
            return True

        if local.logical_timestamp > source.logical_timestamp:
            logger.info(
                "Keeping local settings (local %d > remote %d)",
                local.logical_timestamp,
                source.logical_timestamp,
            )
            self._schedule_push()
        elif self._push_timer is None and self._remote is not None:
            self.status = SyncStatus.SYNCED
        return False

    # ── user operations ───────────────────────────────────────────────────

    def create_list(self, name: str) -> FavoriteList:
        new_list = FavoriteList(id=f"list_user_{uuid4().hex[:12]}", name=name.strip())
        self.mutate(lambda c: {"favorite_lists": [*c.favorite_lists, new_list]})
        return new_list

    def delete_list(self, list_id: str) -> AppConfig:
        """
        Remove a user-created list.

        Raises:
            PermanentListError: For the three built-in lists.
            KeyError:           If no list has ``list_id``.
        """
        if list_id in PERMANENT_LIST_IDS:
            raise PermanentListError(f"{list_id!r} is a permanent list and cannot be deleted")
        self.config.get_list(list_id)

        def _drop(c: AppConfig) -> Dict[str, Any]:
            changes: Dict[str, Any] = {"favorite_lists": [f for f in c.favorite_lists if f.id != list_id]}
            if c.active_list_id == list_id:
                changes["active_list_id"] = GENERAL_LIST_ID
            return changes

        return self.mutate(_drop)

    def toggle_item_in_list(self, list_id: str, item_id: str) -> bool:
        """
        Add ``item_id`` to the list, or remove it if already present.

        Returns:
            ``True`` if the item is in the list afterwards.

        Raises:
            KeyError: If no list has ``list_id``.
        """
        present = item_id in self.config.get_list(list_id).item_ids

        def _toggle(c: AppConfig) -> Dict[str, Any]:
            lists = []
            for fav in c.favorite_lists:
                if fav.id == list_id:
                    ids = [i for i in fav.item_ids if i != item_id] if present else [*fav.item_ids, item_id]
                    fav = fav.model_copy(update={"item_ids": ids})
                lists.append(fav)
            return {"favorite_lists": lists}

        self.mutate(_toggle)
        return not present

    def set_active_list(self, list_id: str) -> AppConfig:
        self.config.get_list(list_id)
        return self.mutate({"active_list_id": list_id})

    def hide_item(self, item_id: str) -> AppConfig:
        return self.mutate(lambda c: {"hidden_item_ids": [*c.hidden_item_ids, item_id]})

    def unhide_item(self, item_id: str) -> AppConfig:
        return self.mutate(lambda c: {"hidden_item_ids": [i for i in c.hidden_item_ids if i != item_id]})

    def clear_hidden(self) -> AppConfig:
        return self.mutate({"hidden_item_ids": []})

    def toggle_restored_global(self, item_id: str) -> bool:
        """Opt a globally ignored item back in, or out again. Returns the new state."""
        restored = item_id in self.config.restored_global_ids
        if restored:
            self.mutate(lambda c: {"restored_global_ids": [i for i in c.restored_global_ids if i != item_id]})
        else:
            self.mutate(lambda c: {"restored_global_ids": [*c.restored_global_ids, item_id]})
        return not restored

    def update_preferences(self, patch: PreferencesPatch) -> AppConfig:
        changes = patch.model_dump(exclude_none=True)
        if not changes:
            return self.config
        return self.mutate(changes)

    # ── import / export ───────────────────────────────────────────────────

    def export_json(self) -> str:
        return json.dumps(self.config.to_wire(), indent=2)

    def import_json(self, document: Union[str, bytes, Dict[str, Any]]) -> AppConfig:
        """
        Replace settings from an exported document.

        Accepts current exports (``favoriteLists``) and legacy ones
        (flat ``favorites``).  Fields absent from the document keep their
        current values.  The result is stamped as a fresh mutation.

        Raises:
            InvalidConfigImport: If the document is not JSON, has neither
                list key, or fails validation.
        """
        if isinstance(document, dict):
            data = dict(document)
        else:
            try:
                data = json.loads(document)
            except ValueError as exc:
                raise InvalidConfigImport("settings file is not valid JSON") from exc
        if not isinstance(data, dict) or not ("favoriteLists" in data or "favorites" in data):
            raise InvalidConfigImport("settings file has no favoriteLists or favorites")

        if "favorites" in data and "favoriteLists" not in data:
            data["favoriteLists"] = [
                {"id": GENERAL_LIST_ID, "name": "General", "coinIds": data.pop("favorites")}
            ]
        data.pop("lastUpdated", None)

        try:
            imported = AppConfig.model_validate({**self.config.to_wire(), **data})
        except ValidationError as exc:
            raise InvalidConfigImport(str(exc)) from exc
        logger.info("Imported settings with %d list(s)", len(imported.favorite_lists))
        return self._commit(imported)
