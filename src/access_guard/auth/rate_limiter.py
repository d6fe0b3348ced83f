"""In-memory sliding window rate limiter."""

from __future__ import annotations

import time
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one limiter check."""

    allowed: bool
    remaining: int
    retry_after_ms: int | None = None

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds for ``Retry-After`` (0 when allowed, else >= 1)."""
        if self.retry_after_ms is None:
            return 0
        return max(1, -(-self.retry_after_ms // 1000))


class SlidingWindowRateLimiter:
    """Sliding window rate limiter keyed by (identity, route class).

    Keys are spread over a fixed number of lock stripes, so concurrent
    requests for the same key are serialized while unrelated keys rarely
    contend. Single-instance only: history lives in process memory and is
    lost on restart. For multi-instance deployments: replace with Redis
    backend.
    """

    def __init__(
        self,
        stripes: int = 64,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        if stripes <= 0:
            raise ValueError("stripes must be positive")
        self._clock = clock
        self._locks = [Lock() for _ in range(stripes)]
        self._buckets: list[dict[str, list[float]]] = [{} for _ in range(stripes)]
        # Window length last used per key, so cleanup honours mixed windows.
        self._windows: list[dict[str, int]] = [{} for _ in range(stripes)]

    @staticmethod
    def make_key(identity: str, route_class: str) -> str:
        return f"{identity}:{route_class}"

    def _stripe(self, key: str) -> int:
        return zlib.crc32(key.encode()) % len(self._locks)

    def check(
        self,
        identity: str,
        route_class: str,
        limit: int,
        window_ms: int = 60_000,
    ) -> RateLimitResult:
        """Record a request if the window has room.

        Args:
            identity: Client identifier, e.g. an IP or client key id.
            route_class: Route group the limit applies to.
            limit: Max requests per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitResult. When denied, ``retry_after_ms`` is the time
            until the oldest retained request leaves the window.
        """
        key = self.make_key(identity, route_class)
        index = self._stripe(key)
        now = self._clock()
        cutoff = now - window_ms

        with self._locks[index]:
            bucket = self._buckets[index]
            self._windows[index][key] = window_ms
            # Remove expired entries
            timestamps = [t for t in bucket.get(key, ()) if t > cutoff]

            if len(timestamps) >= limit:
                bucket[key] = timestamps
                retry_after = window_ms - (now - timestamps[0]) if timestamps else window_ms
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    retry_after_ms=max(int(retry_after), 1),
                )

            timestamps.append(now)
            bucket[key] = timestamps
            return RateLimitResult(allowed=True, remaining=limit - len(timestamps))

    def cleanup(self) -> int:
        """Remove all expired entries. Call periodically.

        Returns:
            Number of keys cleaned up.
        """
        now = self._clock()
        cleaned = 0

        for lock, bucket, windows in zip(
            self._locks, self._buckets, self._windows, strict=True
        ):
            with lock:
                empty_keys = []
                for key, timestamps in bucket.items():
                    cutoff = now - windows.get(key, 60_000)
                    bucket[key] = [t for t in timestamps if t > cutoff]
                    if not bucket[key]:
                        empty_keys.append(key)
                for key in empty_keys:
                    del bucket[key]
                    windows.pop(key, None)
                    cleaned += 1

        return cleaned

    def reset(self) -> None:
        for lock, bucket, windows in zip(
            self._locks, self._buckets, self._windows, strict=True
        ):
            with lock:
                bucket.clear()
                windows.clear()

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets)
