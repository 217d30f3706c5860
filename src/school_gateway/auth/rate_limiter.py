"""Per-principal fixed window rate limiters.

Each principal gets one window of ``window_seconds``. The first request
(or the first one after the window has elapsed) opens a new window with a
count of 1; later requests are admitted while the count is below
``max_requests`` and denied without incrementing once it is reached.

This is a fixed window, not a sliding window or token bucket: a principal
can send up to ``2 * max_requests`` requests across a window boundary.
That burst is accepted. A stricter variant belongs in a separate class,
not in a change to these semantics.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Protocol

from redis.exceptions import RedisError

from school_gateway.errors import RateLimitStoreUnavailable

if TYPE_CHECKING:
    from redis.asyncio import Redis


class RateLimiter(Protocol):
    async def acheck(self, key: str) -> tuple[bool, int]: ...

    async def asweep(self) -> int: ...

    async def aping(self) -> None: ...


@dataclass
class RateWindowEntry:
    window_start: float
    count: int


class InMemoryRateLimiter:
    """Fixed window limiter keyed by principal id.

    Process scoped: created at startup, entries are overwritten when their
    window elapses and removed by ``cleanup()``, which the application
    lifespan calls periodically. Thread-safe via Lock; the read, check and
    increment happen under one lock acquisition. Single-instance only, use
    ``RedisRateLimiter`` when several processes serve traffic.
    """

    def __init__(self, window_seconds: int = 60, max_requests: int = 100) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self._window = window_seconds
        self._max = max_requests
        self._entries: dict[str, RateWindowEntry] = {}
        self._lock = Lock()

    @property
    def window_seconds(self) -> int:
        return self._window

    @property
    def max_requests(self) -> int:
        return self._max

    def check(self, key: str) -> tuple[bool, int]:
        """Count one request for ``key``.

        Returns:
            (allowed, retry_after_seconds).
            If allowed: (True, 0).
            If denied: (False, seconds until the current window ends).
        """
        now = time.monotonic()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start > self._window:
                self._entries[key] = RateWindowEntry(window_start=now, count=1)
                return True, 0

            if entry.count < self._max:
                entry.count += 1
                return True, 0

            remaining = entry.window_start + self._window - now
            return False, max(math.ceil(remaining), 1)

    def allow(self, key: str) -> bool:
        allowed, _retry_after = self.check(key)
        return allowed

    def count(self, key: str) -> int:
        """Requests counted in ``key``'s current window (0 if none)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or time.monotonic() - entry.window_start > self._window:
                return 0
            return entry.count

    def cleanup(self) -> int:
        """Remove entries whose window has elapsed. Call periodically.

        Returns:
            Number of keys cleaned up.
        """
        now = time.monotonic()

        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now - entry.window_start > self._window
            ]
            for key in expired:
                del self._entries[key]

        return len(expired)

    async def acheck(self, key: str) -> tuple[bool, int]:
        return self.check(key)

    async def asweep(self) -> int:
        return self.cleanup()

    async def aping(self) -> None:
        return None


# KEYS[1]: counter key. ARGV[1]: key TTL in ms. ARGV[2]: max requests.
# Returns {allowed (0/1), ttl_ms}.
_FIXED_WINDOW_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]))
if not count then
    redis.call('SET', KEYS[1], 1, 'PX', ARGV[1])
    return {1, 0}
end
if count < tonumber(ARGV[2]) then
    redis.call('INCR', KEYS[1])
    return {1, 0}
end
return {0, redis.call('PTTL', KEYS[1])}
"""


class RedisRateLimiter:
    """Fixed window limiter backed by a shared Redis counter.

    Same semantics as ``InMemoryRateLimiter``; the check-and-increment runs
    as a single Lua script so concurrent requests from several processes
    are counted exactly. Windows expire through the key TTL, so there is
    nothing to sweep. The TTL is one millisecond longer than the window:
    a request exactly ``window_seconds`` after the first one still falls in
    the old window, as it does in memory.

    Store failures raise ``RateLimitStoreUnavailable``.
    """

    def __init__(
        self,
        redis: Redis,
        window_seconds: int = 60,
        max_requests: int = 100,
        key_prefix: str = "ratelimit:",
    ) -> None:
        self._redis = redis
        self._window = window_seconds
        self._max = max_requests
        self._prefix = key_prefix
        self._script = redis.register_script(_FIXED_WINDOW_SCRIPT)

    async def acheck(self, key: str) -> tuple[bool, int]:
        try:
            allowed, ttl_ms = await self._script(
                keys=[f"{self._prefix}{key}"],
                args=[self._window * 1000 + 1, self._max],
            )
        except RedisError as e:
            raise RateLimitStoreUnavailable(type(e).__name__) from e
        if allowed:
            return True, 0
        remaining_ms = int(ttl_ms) - 1
        return False, max(math.ceil(remaining_ms / 1000), 1)

    async def asweep(self) -> int:
        return 0

    async def aping(self) -> None:
        await self._redis.ping()

    async def aclose(self) -> None:
        await self._redis.aclose()
