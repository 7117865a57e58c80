"""
Fixed-window request counter.

Each key gets a bucket holding the number of requests admitted since the
window started. When the window runs out the next request opens a new one.
Up to 2 x max_requests can get through around a window boundary; that is
accepted for abuse prevention.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int


@dataclass
class Bucket:
    count: int
    window_start: int

    def reset_time(self, window_ms):
        return self.window_start + window_ms


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: Optional[int] = None
    reset_time: Optional[int] = None


class MemoryBucketStore:
    """Process-local bucket storage. Lost on restart, which just resets quotas."""

    def __init__(self):
        self._buckets: Dict[str, Bucket] = {}

    def get(self, key) -> Optional[Bucket]:
        return self._buckets.get(key)

    def set(self, key, bucket: Bucket):
        self._buckets[key] = bucket

    def delete(self, key):
        self._buckets.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._buckets.keys())

    def __len__(self):
        return len(self._buckets)


def epoch_ms():
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(self, store=None, clock: Callable[[], int] = None, cleanup_interval_ms: int = 5 * 60 * 1000):
        self.store = store if store is not None else MemoryBucketStore()
        self.clock = clock or epoch_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self._lock = threading.Lock()
        self._last_cleanup = self.clock()
        # Longest window seen, so the sweep never drops a bucket that is still live
        self._max_window_ms = 0

    def check_and_consume(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Admit or reject one request for key.

        Check and increment happen under one lock so two concurrent callers
        can never both take the last slot.
        """
        if not key:
            raise ValidationError("Rate limit key must be a non-empty string")
        if config.window_ms <= 0 or config.max_requests <= 0:
            raise ValidationError("Rate limit window and max requests must be positive")

        with self._lock:
            now = self.clock()
            self._max_window_ms = max(self._max_window_ms, config.window_ms)
            self._maybe_cleanup(now)

            bucket = self.store.get(key)
            if bucket is None or now >= bucket.reset_time(config.window_ms):
                bucket = Bucket(count=0, window_start=now)

            reset_time = bucket.reset_time(config.window_ms)

            if bucket.count >= config.max_requests:
                logger.warning("Rate limit exceeded for %s (%d/%dms)", key, config.max_requests, config.window_ms)
                return RateLimitResult(allowed=False, limit=config.max_requests, remaining=0, reset_time=reset_time)

            bucket.count += 1
            self.store.set(key, bucket)
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests - bucket.count,
                reset_time=reset_time,
            )

    def reset(self, key):
        with self._lock:
            self.store.delete(key)

    def _maybe_cleanup(self, now):
        if now - self._last_cleanup < self.cleanup_interval_ms:
            return
        self._last_cleanup = now

        expired = []
        for key in self.store.keys():
            bucket = self.store.get(key)
            if bucket is not None and now >= bucket.reset_time(self._max_window_ms):
                expired.append(key)
        for key in expired:
            self.store.delete(key)

        if expired:
            logger.debug("Cleaned up %d expired rate limit buckets", len(expired))
