"""
core/storage.py
───────────────
String-keyed local key/value storage with a finite quota.

This is the local persistence layer shared by the window cache and the
settings replicator.  Values are opaque strings (callers serialise JSON
themselves) and the store enforces a total byte quota: a write that would
exceed it raises :class:`QuotaExceededError` and leaves the store
unchanged.  There are no transactions.

Implementations
---------------
FileLocalStore
    One file per key under a directory; survives process restarts.
MemoryLocalStore
    Dict-backed; used when ``LOCAL_STORE_DIR`` is empty and in tests.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Raised when a write would push the store over its byte quota, or the disk is full."""


class LocalStore(Protocol):
    """Minimal key/value contract (mirrors browser ``localStorage``)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


def _size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryLocalStore:
    """In-process store with the same quota semantics as the file store."""

    def __init__(self, quota_bytes: int = 5 * 1024 * 1024) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        used = sum(_size(k, v) for k, v in self._data.items() if k != key)
        if used + _size(key, value) > self.quota_bytes:
            raise QuotaExceededError(
                f"writing {key!r} would exceed the {self.quota_bytes}-byte quota"
            )
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class FileLocalStore:
    """
    Directory-backed store: one UTF-8 file per key.

    Keys are percent-encoded into file names so any string is a valid key.
    Writes go through a temporary file and ``os.replace`` so a crash never
    leaves a half-written value behind.

    Args:
        root:        Directory holding the value files (created if missing).
        quota_bytes: Maximum total bytes of all keys plus values.
    """

    _SUFFIX = ".val"

    def __init__(self, root: Path, quota_bytes: int = 5 * 1024 * 1024) -> None:
        self.root = Path(root)
        self.quota_bytes = quota_bytes
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / (quote(key, safe="") + self._SUFFIX)

    def get(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        used = 0
        for other in self.keys():
            if other == key:
                continue
            try:
                used += len(other.encode("utf-8")) + self._path(other).stat().st_size
            except FileNotFoundError:
                continue
        if used + _size(key, value) > self.quota_bytes:
            raise QuotaExceededError(
                f"writing {key!r} would exceed the {self.quota_bytes}-byte quota"
            )

        target = self._path(key)
        tmp_path = target.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, target)
        except OSError as exc:
            # Disk full (or similar) is reported like the store's own quota.
            tmp_path.unlink(missing_ok=True)
            raise QuotaExceededError(f"writing {key!r} failed: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def keys(self) -> List[str]:
        return sorted(
            unquote(path.name[: -len(self._SUFFIX)])
            for path in self.root.glob(f"*{self._SUFFIX}")
        )


def open_local_store(directory: str, quota_bytes: int) -> LocalStore:
    """
    Build the store selected by configuration.

    Args:
        directory:   ``LOCAL_STORE_DIR``; empty string selects memory.
        quota_bytes: ``LOCAL_STORE_QUOTA_BYTES``.
    """
    if not directory:
        logger.info("LOCAL_STORE_DIR is empty — using an in-memory store")
        return MemoryLocalStore(quota_bytes)
    logger.info("Local store at %s (quota %d bytes)", directory, quota_bytes)
    return FileLocalStore(Path(directory), quota_bytes)
