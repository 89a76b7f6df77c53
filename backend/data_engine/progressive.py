"""
data_engine/progressive.py
──────────────────────────
Background growth of the in-memory working set, one window per tick.

States
------
BOOTSTRAPPING  Window 1 has not been loaded yet.  The first ``tick`` (or an
               explicit ``bootstrap``) loads it and moves to STEADY.
STEADY         Each ``tick`` loads the next unloaded window while the total
               is below ``max_total``.  At most one window per tick.
SUSPENDED      A search mode that bypasses windowing is active; ticks are
               no-ops.  ``resume`` returns to the previous state.

Only one window load is ever in flight: a tick that arrives while a load
is running is dropped, not queued.  Every merge publishes a *new*
:class:`WorkingSet`; readers never see one being modified.
"""

import asyncio
import logging
from bisect import bisect_left
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from data_engine.coordinator import WindowLoader, WindowResult
from schemas.market import LoadSource, RankedItem

logger = logging.getLogger(__name__)

WorkingSetListener = Callable[["WorkingSet"], None]


class WorkingSet:
    """Immutable, id-deduplicated, rank-sorted collection of items."""

    __slots__ = ("_items", "_by_id", "_ranks")

    def __init__(self, items: Iterable[RankedItem] = ()) -> None:
        by_id: Dict[str, RankedItem] = {}
        for item in items:
            by_id[item.id] = item
        self._items: Tuple[RankedItem, ...] = tuple(
            sorted(by_id.values(), key=lambda i: (i.rank, i.id))
        )
        self._ranks: Tuple[int, ...] = tuple(i.rank for i in self._items)
        self._by_id = by_id

    @property
    def items(self) -> Tuple[RankedItem, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[RankedItem]:
        return iter(self._items)

    def get(self, item_id: str) -> Optional[RankedItem]:
        return self._by_id.get(item_id)

    def find_rank(self, rank: int) -> Optional[RankedItem]:
        pos = bisect_left(self._ranks, rank)
        if pos < len(self._ranks) and self._ranks[pos] == rank:
            return self._items[pos]
        return None

    def merge(self, incoming: Iterable[RankedItem]) -> "WorkingSet":
        """Return a new set where ``incoming`` replaces items with the same id."""
        return WorkingSet([*self._items, *incoming])


class SyncState(str, Enum):
    BOOTSTRAPPING = "bootstrapping"
    STEADY = "steady"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class ControllerStatus:
    state: SyncState
    loaded_windows: Tuple[int, ...]
    total_loaded: int
    working_set_size: int
    busy: bool
    exhausted: bool


class ProgressiveSyncController:
    """
    Drives :class:`WindowLoader` to grow the working set up to ``max_total``.

    Args:
        loader:    Window loader (its ``window_size`` is the window unit).
        max_total: Stop issuing loads once this many items were loaded.
    """

    def __init__(self, loader: WindowLoader, max_total: int) -> None:
        if max_total < 1:
            raise ValueError(f"max_total must be >= 1, got {max_total}")
        self._loader = loader
        self.max_total = max_total
        self.state = SyncState.BOOTSTRAPPING
        self._resume_state = SyncState.BOOTSTRAPPING
        self.working_set = WorkingSet()
        self._window_counts: Dict[int, int] = {}
        self._lock = asyncio.Lock()
        self.exhausted = False
        self._listeners: List[WorkingSetListener] = []

    # ── state ─────────────────────────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def total_loaded(self) -> int:
        return sum(self._window_counts.values())

    @property
    def loaded_windows(self) -> Tuple[int, ...]:
        return tuple(sorted(self._window_counts))

    @property
    def is_complete(self) -> bool:
        """True once no further background loads will be issued."""
        return self.exhausted or self.total_loaded >= self.max_total

    def status(self) -> ControllerStatus:
        return ControllerStatus(
            state=self.state,
            loaded_windows=self.loaded_windows,
            total_loaded=self.total_loaded,
            working_set_size=len(self.working_set),
            busy=self.busy,
            exhausted=self.exhausted,
        )

    def subscribe(self, listener: WorkingSetListener) -> Callable[[], None]:
        """Call ``listener`` with every newly published working set."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ── transitions ───────────────────────────────────────────────────────

    def suspend(self) -> None:
        """Enter search mode; the in-flight load (if any) still completes."""
        if self.state is not SyncState.SUSPENDED:
            self._resume_state = self.state
            self.state = SyncState.SUSPENDED
            logger.info("Progressive loading suspended")

    def resume(self) -> None:
        if self.state is SyncState.SUSPENDED:
            self.state = self._resume_state
            logger.info("Progressive loading resumed (%s)", self.state.value)

    async def bootstrap(self) -> Optional[WindowResult]:
        """
        Load window 1 and move to STEADY.

        Returns:
            The window result, or ``None`` if not bootstrapping or busy.
        """
        if self.state is not SyncState.BOOTSTRAPPING or self.busy:
            return None
        async with self._lock:
            result = await self._load_and_merge(1)
        # An EMPTY first window is retried by the next tick.
        if self.state is SyncState.SUSPENDED:
            self._resume_state = SyncState.STEADY
        else:
            self.state = SyncState.STEADY
        return result

    async def tick(self) -> bool:
        """
        Single timer entry point.

        Returns:
            ``True`` if this tick loaded a window.
        """
        if self.state is SyncState.SUSPENDED or self.busy:
            return False
        if self.state is SyncState.BOOTSTRAPPING:
            return await self.bootstrap() is not None
        if self.is_complete:
            return False

        index = self._next_window_index()
        async with self._lock:
            await self._load_and_merge(index)
        return True

    async def load_unmerged(self, window_index: int) -> WindowResult:
        """Load a window for a direct read, serialized with background loads."""
        async with self._lock:
            return await self._loader.load_result(window_index)

    async def ensure_window(self, window_index: int) -> WindowResult:
        """
        Load a specific window on demand (e.g. a rank jump) and merge it.

        Waits for an in-flight load instead of running concurrently with it.
        """
        async with self._lock:
            return await self._load_and_merge(window_index)

    # ── internals ─────────────────────────────────────────────────────────

    def _next_window_index(self) -> int:
        index = 1
        while index in self._window_counts:
            index += 1
        return index

    async def _load_and_merge(self, window_index: int) -> WindowResult:
        result = await self._loader.load_result(window_index)

        if result.source is LoadSource.EMPTY:
            logger.warning("Window %d produced nothing; will retry on a later tick", window_index)
            return result

        if result.is_complete:
            self._window_counts[window_index] = len(result.items)
            if not result.items:
                self.exhausted = True
                logger.info("Upstream exhausted at window %d", window_index)

        self._publish(self.working_set.merge(result.items))
        logger.info(
            "Merged window %d (%s): working set %d items, %d/%d loaded",
            window_index,
            result.source.value,
            len(self.working_set),
            self.total_loaded,
            self.max_total,
        )
        return result

    def _publish(self, working_set: WorkingSet) -> None:
        self.working_set = working_set
        for listener in list(self._listeners):
            listener(working_set)
