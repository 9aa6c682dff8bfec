"""
Entity Cache

TTL-keyed in-process cache used by EntityRepository for read-through and
write-through caching, with hit/miss accounting and an optional LRU cap.
"""

import copy
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, Set, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with insertion time and TTL."""

    value: T
    inserted_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    size: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> Optional[float]:
        """hits / (hits + misses), or None before the first lookup."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return None
        return self.hits / lookups


class CacheStore(Generic[T]):
    """
    TTL cache with lazy expiry.

    Expired entries are removed when read and before stats are reported.
    With ``max_entries`` set, inserting past the cap evicts the least
    recently used entry. Read-through fills go through reserve and
    set_if_current so a fill never overwrites a newer write. All state
    changes happen under one lock.
    """

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        # Outstanding read-through reservations per key
        self._pending: Dict[str, Set[object]] = {}

    def get(self, key: str) -> Optional[T]:
        """Return a copy of the cached value, or None on miss/expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        """Insert or replace ``key``; expiry restarts now."""
        entry = self._new_entry(value, ttl_seconds)
        with self._lock:
            self._pending.pop(key, None)
            self._store_entry(key, entry)

    def reserve(self, key: str) -> object:
        """
        Start a read-through fill of ``key``.

        Returns a token for set_if_current. Any set, invalidate or clear
        that happens before the fill revokes the token.
        """
        token = object()
        with self._lock:
            self._pending.setdefault(key, set()).add(token)
        return token

    def set_if_current(
        self,
        key: str,
        token: object,
        value: T,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        """Store ``value`` only if ``token`` was not revoked; True if stored."""
        entry = self._new_entry(value, ttl_seconds)
        with self._lock:
            if not self._take_token(key, token):
                logger.debug(
                    "Cache fill skipped, entry changed during read", cache_key=key
                )
                return False
            self._store_entry(key, entry)
            return True

    def release(self, key: str, token: object) -> None:
        """Drop a reservation without storing anything."""
        with self._lock:
            self._take_token(key, token)

    def invalidate(self, key: str) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._pending.pop(key, None)
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries; counters are kept."""
        with self._lock:
            self._pending.clear()
            self._entries.clear()

    def stats(self) -> CacheStats:
        """Counters plus the number of live entries."""
        with self._lock:
            self._purge_expired()
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def _new_entry(self, value: T, ttl_seconds: Optional[float]) -> CacheEntry[T]:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")
        return CacheEntry(
            value=copy.deepcopy(value), inserted_at=self._clock(), ttl_seconds=ttl
        )

    def _store_entry(self, key: str, entry: CacheEntry[T]) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        self._enforce_capacity()

    def _take_token(self, key: str, token: object) -> bool:
        tokens = self._pending.get(key)
        if not tokens or token not in tokens:
            return False
        tokens.discard(token)
        if not tokens:
            del self._pending[key]
        return True

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

    def _enforce_capacity(self) -> None:
        if self.max_entries is None:
            return
        if len(self._entries) > self.max_entries:
            # Drop dead entries before evicting live ones
            self._purge_expired()
        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Cache entry evicted", cache_key=evicted_key)
