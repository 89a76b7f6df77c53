"""
data_engine/results.py
──────────────────────
Typed results for the fetch layer.

Upstream calls never raise for expected failures; they return ``Ok`` with
the data or ``Err`` with a :class:`FetchErrorKind`.  The decision to
degrade (stale cache, partial data, empty result) is taken explicitly by
the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class FetchErrorKind(str, Enum):
    """Why an upstream request failed."""

    RATE_LIMITED = "rate_limited"   # HTTP 429
    SERVER_ERROR = "server_error"   # HTTP 5xx
    TRANSPORT = "transport"         # connection / timeout
    MALFORMED = "malformed"         # unusable body or unexpected status


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: FetchErrorKind
    detail: str = ""
    # Seconds from a ``Retry-After`` header, when the upstream sent one.
    retry_after: Optional[float] = None


Result = Union[Ok[T], Err]
