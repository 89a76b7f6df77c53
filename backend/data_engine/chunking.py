"""
data_engine/chunking.py
───────────────────────
Pure window → upstream-page arithmetic.  No I/O.

The provider caps every request at ``page_cap`` items, so a window of
``window_size`` items is covered by ``ceil(window_size / page_cap)``
consecutive upstream pages.  Chunk *k* (1-based) of window *w* requests
page ``(w - 1) * chunks_per_window + k``, which keeps windows disjoint and
pages ascending.

Example:
    >>> plan_chunks(2, 500, 250)
    [3, 4]
"""

import math
from typing import List


def chunks_per_window(window_size: int, page_cap: int) -> int:
    """Number of upstream requests needed to cover one window."""
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    if page_cap < 1:
        raise ValueError(f"page_cap must be >= 1, got {page_cap}")
    return math.ceil(window_size / page_cap)


def plan_chunks(window_index: int, window_size: int, page_cap: int) -> List[int]:
    """
    Return the ordered upstream page numbers that cover a window.

    Args:
        window_index: 1-based window number.
        window_size:  Items per window.
        page_cap:     Provider's per-request item cap.

    Returns:
        Contiguous, ascending page numbers.

    Raises:
        ValueError: If any argument is below 1.
    """
    if window_index < 1:
        raise ValueError(f"window_index must be >= 1, got {window_index}")
    per_window = chunks_per_window(window_size, page_cap)
    first = (window_index - 1) * per_window + 1
    return list(range(first, first + per_window))


def window_for_rank(rank: int, window_size: int) -> int:
    """1-based index of the window containing ``rank``."""
    if rank < 1:
        raise ValueError(f"rank must be >= 1, got {rank}")
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    return (rank - 1) // window_size + 1
