"""
data_engine/retrying.py
───────────────────────
Bounded retries, throttling backoff and a politeness delay around single
upstream requests.

Policy (per failed attempt *n*, 1-based)
----------------------------------------
- ``RATE_LIMITED``            wait ``rate_limit_delay * n`` (or the
                              upstream ``Retry-After``, whichever is longer)
- ``SERVER_ERROR``            wait ``server_error_delay * n``
- ``TRANSPORT`` / ``MALFORMED`` wait ``retry_delay``

No wait follows the final failed attempt; the terminal ``Err`` goes back
to the caller, which decides whether to abort its window.

After every success the fetcher stays unavailable for ``politeness_delay``
seconds: the *next* request waits out whatever is left of that delay
before starting.  This bounds the steady-state request rate regardless of
retries, and does not delay handing back the last chunk of a window.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar

from core.clock import Clock
from data_engine.fetcher import CoinGeckoClient
from data_engine.results import Err, FetchErrorKind, Ok, Result
from schemas.market import RankedItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetcherState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    BACKING_OFF = "backing_off"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Delays are in seconds."""

    max_attempts: int = 3
    rate_limit_delay: float = 2.0
    server_error_delay: float = 1.0
    retry_delay: float = 3.0
    politeness_delay: float = 1.5

    def __post_init__(self) -> None:
        if self.max_attempts < 2:
            raise ValueError(f"max_attempts must be >= 2, got {self.max_attempts}")

    def backoff(self, error: Err, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` before the next one."""
        if error.kind is FetchErrorKind.RATE_LIMITED:
            return max(self.rate_limit_delay * attempt, error.retry_after or 0.0)
        if error.kind is FetchErrorKind.SERVER_ERROR:
            return self.server_error_delay * attempt
        return self.retry_delay


class RetryingFetcher:
    """
    Runs upstream requests through the retry policy, one at a time.

    Args:
        client:   Upstream client used by :meth:`fetch`.
        policy:   Retry / delay configuration.
        clock:    Time source; all waits go through ``clock.sleep``.
        page_cap: ``per_page`` sent with every markets page request.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        policy: RetryPolicy,
        clock: Clock,
        page_cap: int = 250,
    ) -> None:
        self._client = client
        self.policy = policy
        self._clock = clock
        self.page_cap = page_cap
        self.state = FetcherState.IDLE
        self.last_attempts = 0
        self._available_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def fetch(self, page_number: int) -> Result[List[RankedItem]]:
        """Fetch one upstream markets page with retries."""
        return await self.call(
            lambda: self._client.fetch_markets_page(page_number, self.page_cap),
            label=f"page {page_number}",
        )

    async def call(
        self,
        request: Callable[[], Awaitable[Result[T]]],
        label: str = "request",
    ) -> Result[T]:
        """
        Run ``request`` until it succeeds or attempts are exhausted.

        Args:
            request: Zero-argument coroutine factory performing one attempt.
            label:   Name used in log lines.

        Returns:
            The first ``Ok`` or the last ``Err``.
        """
        # Callers queue here so windows and searches share one request budget.
        async with self._lock:
            return await self._call_locked(request, label)

    async def _call_locked(
        self,
        request: Callable[[], Awaitable[Result[T]]],
        label: str,
    ) -> Result[T]:
        await self._wait_until_available()

        result: Result[T] = Err(FetchErrorKind.TRANSPORT, "no attempt made")
        for attempt in range(1, self.policy.max_attempts + 1):
            self.state = FetcherState.REQUESTING
            self.last_attempts = attempt
            result = await request()

            if isinstance(result, Ok):
                self.state = FetcherState.SUCCEEDED
                self._available_at = self._clock.now() + self.policy.politeness_delay
                return result

            self.state = FetcherState.FAILED
            if attempt == self.policy.max_attempts:
                break

            delay = self.policy.backoff(result, attempt)
            logger.warning(
                "Attempt %d/%d for %s failed (%s %s); retrying in %.1fs",
                attempt,
                self.policy.max_attempts,
                label,
                result.kind.value,
                result.detail,
                delay,
            )
            self.state = FetcherState.BACKING_OFF
            await self._clock.sleep(delay)

        logger.error(
            "Giving up on %s after %d attempts (%s)", label, self.last_attempts, result.kind.value
        )
        return result

    async def _wait_until_available(self) -> None:
        if self._available_at is None:
            return
        remaining = self._available_at - self._clock.now()
        if remaining > 0:
            await self._clock.sleep(remaining)
