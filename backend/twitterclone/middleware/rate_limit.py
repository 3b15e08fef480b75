"""
Twitter Clone Backend — Rate Limiting Middleware
==================================================

What:  Per-client fixed window rate limiter.
Why:   Protects the API and its storage from request floods.
How:   Tracks (count, window start) per client key in an owned table.
Who:   Applied to every request via Starlette middleware.
When:  After CORS, before access logging and routing.

Algorithm: Fixed Window Counter
    1. First request for a key opens a window at `now` with count 1
    2. Later requests in the same window increment the count
    3. Admit while count <= limit; reject with 429 once it goes above
    4. When the window elapses the next request opens a fresh window

    Default quota: 60 requests per 60 seconds per client address.

The table is constructed by the composition root and injected into the
middleware, so every app (and every test) owns its own counters.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from twitterclone.exceptions import RateLimitExceededError, error_response

logger = logging.getLogger(__name__)


@dataclass
class RateWindowEntry:
    """Request count for one client key within its current window."""

    count: int
    window_start: float


@dataclass(frozen=True)
class Admission:
    """Outcome of a single admission check."""

    allowed: bool
    limit: int
    count: int
    reset_after: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class RateWindowTable:
    """
    Thread-safe fixed window counters keyed by client.

    Every request touches this table, so each read-increment happens under
    a single lock. No awaits happen while the lock is held.

    Args:
        limit:   Maximum admitted requests per key per window
        window:  Window length in seconds
        clock:   Wall clock source (injectable for tests)
    """

    # Prune expired entries every N admissions
    CLEANUP_INTERVAL = 1000

    def __init__(
        self,
        limit: int = 60,
        window: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._entries: Dict[str, RateWindowEntry] = {}
        self._lock = threading.Lock()
        self._checks = 0

    def admit(self, key: str) -> Admission:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start >= self.window:
                entry = RateWindowEntry(count=1, window_start=now)
                self._entries[key] = entry
            else:
                entry.count += 1
            count = entry.count
            reset_after = max(math.ceil(entry.window_start + self.window - now), 0)

            self._checks += 1
            if self._checks % self.CLEANUP_INTERVAL == 0:
                self._cleanup_expired(now)

        return Admission(
            allowed=count <= self.limit,
            limit=self.limit,
            count=count,
            reset_after=reset_after,
        )

    def get(self, key: str) -> Optional[RateWindowEntry]:
        """Snapshot of the live entry for `key`, or None if absent/expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start >= self.window:
                return None
            return RateWindowEntry(count=entry.count, window_start=entry.window_start)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _cleanup_expired(self, now: float) -> None:
        """Drop keys whose window has elapsed. Caller holds the lock."""
        expired = [
            key for key, entry in self._entries.items()
            if now - entry.window_start >= self.window
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug("Cleaned up %d expired rate limit entries", len(expired))


def client_key(request: Request) -> str:
    """Rate limit key for a request: the connecting address."""
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects clients that exceed their window quota.

    Admitted responses carry X-RateLimit-Limit / -Remaining / -Reset.
    Rejected requests get a terminal 429 with Retry-After and never reach
    downstream middleware or handlers.
    """

    def __init__(self, app: ASGIApp, table: RateWindowTable):
        super().__init__(app)
        self.table = table

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        key = client_key(request)
        admission = self.table.admit(key)

        if not admission.allowed:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ss window",
                key,
                admission.count,
                self.table.window,
            )
            return error_response(RateLimitExceededError(retry_after=admission.reset_after))

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(admission.limit)
        response.headers["X-RateLimit-Remaining"] = str(admission.remaining)
        response.headers["X-RateLimit-Reset"] = str(admission.reset_after)
        return response
