"""Per-client fixed-window request counter.

One limiter is built per route group when the application starts and is
handed to the middleware by reference. State lives in this process only:
with several instances behind a load balancer each keeps its own counts,
so limits are approximate. Exact cross-instance limits would need a
shared counter store.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class WindowEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0


class FixedWindowLimiter:
    """Counts hits per key; the window starts on a key's first hit.

    Args:
        limit: Requests allowed per window.
        window: Window length in seconds.
        cleanup_interval: Minimum seconds between sweeps of expired entries.
        clock: Wall-clock source, replaceable in tests.
    """

    def __init__(
        self,
        limit: int,
        window: float = 60.0,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._entries: dict[str, WindowEntry] = {}
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        stale = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in stale:
            del self._entries[key]

    def check(self, key: str) -> RateLimitResult:
        """Record a hit for *key* unless it is over the limit."""
        now = self._clock()
        self._evict_expired(now)

        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= now:
            entry = WindowEntry(count=0, reset_at=now + self.window)
            self._entries[key] = entry

        if entry.count >= self.limit:
            return RateLimitResult(
                allowed=False,
                limit=self.limit,
                remaining=0,
                reset_at=entry.reset_at,
                retry_after=max(math.ceil(entry.reset_at - now), 1),
            )

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - entry.count,
            reset_at=entry.reset_at,
        )

    def current_count(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= self._clock():
            return 0
        return entry.count


def build_limiters(config) -> tuple[FixedWindowLimiter, dict[str, FixedWindowLimiter]]:
    """Create the default limiter and one limiter per configured path prefix."""
    default = FixedWindowLimiter(config.requests_per_minute, window=60.0)
    groups = {
        prefix: FixedWindowLimiter(group.requests, window=group.window_seconds)
        for prefix, group in config.paths.items()
    }
    return default, groups
