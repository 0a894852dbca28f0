"""
Rate Limiting for the agent HTTP surface.

A sliding-window limiter keyed by client identifier (the remote address).
Each window is divided into sub-windows; the count for the oldest, partially
expired sub-window is weighted by how much of it still overlaps the window.
"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT CLASSES
# =============================================================================

@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Unix timestamp
    retry_after: Optional[float] = None  # Seconds until retry allowed
    message: str = ""

    @property
    def headers(self) -> Dict[str, str]:
        """Generate HTTP headers for rate limit response."""
        headers = {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(max(0, self.remaining)),
            'X-RateLimit-Reset': str(int(self.reset_at)),
        }
        if self.retry_after is not None:
            headers['Retry-After'] = str(max(1, int(self.retry_after + 0.999)))
        return headers


# =============================================================================
# SLIDING WINDOW RATE LIMITER
# =============================================================================

class SlidingWindowRateLimiter:
    """
    Sliding window rate limiter.

    Provides smooth rate limiting by dividing the window into sub-windows
    and calculating a weighted sum based on the current position in the window.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int = 60,
        precision: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.precision = precision
        self.sub_window_seconds = window_seconds / precision
        self._clock = clock
        self._lock = asyncio.Lock()

        # key -> list of (sub-window start, count)
        self._buckets: Dict[str, List[Tuple[float, int]]] = defaultdict(list)

    def _current_window(self, now: float) -> float:
        return now - (now % self.sub_window_seconds)

    def _cleanup_old_entries(self, key: str, now: float) -> None:
        cutoff = now - self.window_seconds - self.sub_window_seconds
        entries = [(ts, count) for ts, count in self._buckets[key] if ts > cutoff]
        if entries:
            self._buckets[key] = entries
        else:
            self._buckets.pop(key, None)

    def _calculate_count(self, key: str, now: float) -> float:
        self._cleanup_old_entries(key, now)

        window_start = now - self.window_seconds
        total = 0.0
        for ts, count in self._buckets.get(key, ()):
            if ts >= window_start:
                weight = 1.0
            else:
                # Partial weight for the oldest sub-window
                overlap = (ts + self.sub_window_seconds) - window_start
                weight = max(0.0, overlap / self.sub_window_seconds)
            total += count * weight
        return total

    async def acquire(self, key: str, cost: int = 1) -> RateLimitResult:
        """Attempt to acquire ``cost`` requests for ``key``."""
        async with self._lock:
            now = self._clock()
            current_window = self._current_window(now)
            current_count = self._calculate_count(key, now)
            remaining = max(0, self.limit - int(current_count))

            entries = self._buckets.get(key)
            if entries:
                reset_at = min(ts for ts, _ in entries) + self.window_seconds
            else:
                reset_at = now + self.window_seconds

            if current_count + cost <= self.limit:
                entries = self._buckets[key]
                for i, (ts, count) in enumerate(entries):
                    if ts == current_window:
                        entries[i] = (ts, count + cost)
                        break
                else:
                    entries.append((current_window, cost))

                return RateLimitResult(
                    allowed=True,
                    remaining=remaining - cost,
                    limit=self.limit,
                    reset_at=reset_at,
                    message="Request allowed",
                )

            retry_after = max(0.0, reset_at - now)
            logger.warning("Rate limit exceeded for %s", key)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=self.limit,
                reset_at=reset_at,
                retry_after=retry_after,
                message=f"Rate limit exceeded. Retry after {retry_after:.1f}s",
            )

    async def reset(self, key: str) -> None:
        """Reset rate limit for a key."""
        async with self._lock:
            self._buckets.pop(key, None)


__all__ = [
    "RateLimitResult",
    "SlidingWindowRateLimiter",
]
