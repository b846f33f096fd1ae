"""
=============================================================================
RESPONSE CACHE MIDDLEWARE
=============================================================================

GitHub allows 60 unauthenticated API calls per hour per IP. A flasher page
that fetches a manifest on every visit would burn through that in minutes,
so every proxy answer is cached in memory:

    request ──► key = "artifacts:/artifacts/123.json?flavor=cam"
                  │
                  ▼
            ┌───────────┐  hit   ┌────────────────────────┐
            │  cache    │──────► │ stored copy, X-Cache:  │
            │  match()  │        │ HIT                    │
            └─────┬─────┘        └────────────────────────┘
                  │ miss
                  ▼
            handler(request)
                  │
          status < 400 ?──── no ───► returned as is, never stored
                  │ yes
                  ▼
            Cache-Control: public, max-age=N
            put(key, copy, ttl=N), X-Cache: MISS

The key includes the query string, so "?flavor=cam" and "?flavor=" are
separate entries.

TTLCache is also used by the GitHub client to hold raw upstream answers
for a short time, with a TTL chosen by upstream status.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging
import threading
import time

import cachetools

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, cache_control


logger = logging.getLogger(__name__)


CACHEABLE_METHODS = frozenset({"GET", "HEAD"})


@dataclass
class CacheEntry:
    value: Any
    ttl: float
    size: int = 1


def _expires_at(key: str, entry: CacheEntry, now: float) -> float:
    return now + entry.ttl


class TTLCache:
    """
    Thread-safe in-memory key/value store with a TTL per entry.

        cache = TTLCache(maxsize=2)
        cache.set("a", 1, ttl=60)
        cache.get("a")          # 1
        cache.get("missing")    # None

    Backed by cachetools.TLRUCache: when the store is full, expired entries
    go first, then the least recently used ones. A TTL of 0 or less means
    "do not store".

    maxsize counts entries, or whatever getsizeof measures when given (the
    response cache counts body bytes). A value larger than maxsize on its
    own is not stored.

    cachetools is not thread-safe and worker threads share one instance, so
    every access takes the lock.
    """

    def __init__(
        self,
        maxsize: int = 512,
        clock: Callable[[], float] = time.monotonic,
        getsizeof: Optional[Callable[[Any], int]] = None,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self.maxsize = maxsize
        self._getsizeof = getsizeof
        self._entries = cachetools.TLRUCache(
            maxsize=maxsize,
            ttu=_expires_at,
            timer=clock,
            getsizeof=lambda entry: entry.size,
        )
        self._lock = threading.Lock()

        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self.misses += 1
                return None

            self.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return

        size = self._getsizeof(value) if self._getsizeof else 1
        if size > self.maxsize:
            logger.debug(f"Not caching {key}: {size} exceeds {self.maxsize}")
            return

        with self._lock:
            self._entries[key] = CacheEntry(value=value, ttl=ttl, size=size)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict:
        with self._lock:
            self._entries.expire()
            return {
                "entries": len(self._entries),
                "size": self._entries.currsize,
                "maxsize": self.maxsize,
                "hits": self.hits,
                "misses": self.misses,
            }


def _response_size(response: HTTPResponse) -> int:
    return max(len(response.body), 1)


class ResponseCache(TTLCache):
    """
    TTLCache of HTTPResponse objects, bounded by total body bytes.

        cache = ResponseCache(maxsize=64 * 1024 * 1024)

    Responses are mutable (middleware keeps adding headers on the way out),
    so they are copied going in and coming out.
    """

    def __init__(
        self,
        maxsize: int = 64 * 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(maxsize=maxsize, clock=clock, getsizeof=_response_size)

    def match(self, key: str) -> Optional[HTTPResponse]:
        response = self.get(key)
        return response.copy() if response is not None else None

    def put(self, key: str, response: HTTPResponse, ttl: float) -> None:
        self.set(key, response.copy(), ttl)


class CacheMiddleware(Middleware):
    """
    Per-route cache-around-compute.

        cache = ResponseCache()
        router.get("/:run_id{[0-9]+}.json",
                   middleware=[CacheMiddleware(cache, 86400, "artifacts")])

    Args:
        cache: Shared ResponseCache.
        max_age: Seconds to keep the entry; also sent as Cache-Control.
        name: Key namespace, so apps sharing a cache never collide.
    """

    def __init__(self, cache: ResponseCache, max_age: int, name: str = "default"):
        self.cache = cache
        self.max_age = max_age
        self.cache_name = name

    def key_for(self, request: HTTPRequest) -> str:
        return f"{self.cache_name}:{request.url}"

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method not in CACHEABLE_METHODS:
            return next(request)

        key = self.key_for(request)

        cached = self.cache.match(key)
        if cached is not None:
            cached.headers["X-Cache"] = "HIT"
            return cached

        response = next(request)

        if int(response.status) >= 400:
            return response

        response.headers["Cache-Control"] = cache_control(self.max_age)
        self.cache.put(key, response, self.max_age)
        response.headers["X-Cache"] = "MISS"
        return response
