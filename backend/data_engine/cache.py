"""
data_engine/cache.py
────────────────────
Persistent, TTL-checked window cache on top of a :class:`LocalStore`.

Entries live under a key prefix (the *namespace*) so that the cache can
evict itself under storage pressure without touching anything else kept
in the same store (e.g. the user settings).

Write policy
------------
1. Serialise ``{key, data, fetched_at}`` to JSON and store it.
2. On :class:`QuotaExceededError`, delete every key in this namespace and
   retry exactly once.
3. If the retry fails too, drop the write.  The caller still has the data
   in memory for the current session, so nothing is raised.
"""

import json
import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError

from core.clock import Clock
from core.storage import LocalStore, QuotaExceededError
from schemas.market import CacheEntry, RankedItem

logger = logging.getLogger(__name__)


class PersistentCache:
    """
    Namespaced ``key → CacheEntry`` store.

    Args:
        store:     Backing key/value store (shared with other consumers).
        clock:     Source of ``fetched_at`` timestamps.
        namespace: Prefix owned exclusively by this cache.
    """

    def __init__(self, store: LocalStore, clock: Clock, namespace: str = "pmcrypto_cache_") -> None:
        if not namespace:
            raise ValueError("namespace must not be empty")
        self._store = store
        self._clock = clock
        self.namespace = namespace

    def _full_key(self, key: str) -> str:
        return self.namespace + key

    # ── public API ────────────────────────────────────────────────────────

    def read(self, key: str) -> Optional[CacheEntry]:
        """Return the cached entry for ``key``, or ``None`` if absent/corrupt."""
        raw = self._store.get(self._full_key(key))
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring corrupt cache entry %r", key)
            return None

    @staticmethod
    def is_fresh(entry: CacheEntry, ttl: float, now: float) -> bool:
        """True while ``entry`` is younger than ``ttl`` seconds."""
        return now - entry.fetched_at < ttl

    def write(self, key: str, data: Sequence[RankedItem]) -> bool:
        """
        Store ``data`` under ``key`` stamped with the current time.

        Returns:
            ``True`` if persisted, ``False`` if the write was dropped.
        """
        entry = CacheEntry(key=key, data=list(data), fetched_at=self._clock.now())
        payload = json.dumps(entry.model_dump(by_alias=True), separators=(",", ":"))
        full_key = self._full_key(key)

        try:
            self._store.set(full_key, payload)
            return True
        except QuotaExceededError:
            removed = self.purge_namespace()
            logger.warning(
                "Storage quota exceeded writing %r; evicted %d cache entries and retrying",
                key,
                removed,
            )

        try:
            self._store.set(full_key, payload)
            return True
        except QuotaExceededError:
            logger.warning("Cache write for %r dropped: still over quota after eviction", key)
            return False

    def purge_namespace(self) -> int:
        """Delete every key owned by this cache; returns how many."""
        owned: List[str] = [k for k in self._store.keys() if k.startswith(self.namespace)]
        for k in owned:
            self._store.remove(k)
        return len(owned)
