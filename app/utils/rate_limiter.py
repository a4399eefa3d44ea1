"""
Fixed-window request throttle.

The store is injected: `RedisRateLimitStore` shares the window across API
workers, `InMemoryRateLimitStore` serves a single process and the tests.
"""
import math
import threading
import time
from typing import Callable, Protocol

import redis


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: float) -> bool:
        """Records a request for `key`. False when one already landed inside the window."""
        ...


class RedisRateLimitStore:
    def __init__(self, client: redis.Redis, prefix: str = "rate_limit:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimitStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        return cls(client, **kwargs)

    def hit(self, key: str, window_seconds: float) -> bool:
        # SET NX EX: the first request in a window creates the key, Redis expires it
        created = self._client.set(
            f"{self._prefix}{key}",
            1,
            nx=True,
            ex=max(1, math.ceil(window_seconds)),
        )
        return bool(created)


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._expires: dict[str, float] = {}

    def hit(self, key: str, window_seconds: float) -> bool:
        with self._lock:
            now = self._clock()
            self._evict(now)

            if key in self._expires:
                return False

            self._expires[key] = now + window_seconds
            return True

    def _evict(self, now: float):
        expired = [k for k, deadline in self._expires.items() if deadline <= now]
        for k in expired:
            del self._expires[k]

    def __len__(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return len(self._expires)
