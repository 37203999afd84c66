"""In-memory key/value cache with per-entry expiry."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

Clock = Callable[[], float]
V = TypeVar("V")

_MISS = object()


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    """Cached value and the unix timestamp after which it is dead."""

    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """Expiring key -> value store.

    Expiry is checked lazily on read: an entry whose ``expires_at`` has
    passed is reported as a miss and removed. ``max_entries`` bounds memory
    by evicting the oldest insertions first.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_entries: int = 500,
        clock: Optional[Clock] = None,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock: Clock = clock or time.time
        self._entries: "OrderedDict[Hashable, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Optional[V] = None) -> Optional[V]:
        """Return the live value for ``key`` or ``default`` on a miss."""
        value = self._lookup(key)
        return default if value is _MISS else value  # type: ignore[return-value]

    def __contains__(self, key: Hashable) -> bool:
        return self._lookup(key) is not _MISS

    def set(self, key: Hashable, value: V, ttl: Optional[float] = None) -> None:
        """Store ``value`` for ``ttl`` seconds (cache default when omitted)."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry, returning how many were removed."""
        now = self._clock()
        with self._lock:
            dead = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in dead:
                del self._entries[key]
        return len(dead)

    def __len__(self) -> int:
        return len(self._entries)

    def _lookup(self, key: Hashable) -> object:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISS
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return _MISS
            return entry.value


def make_cache_key(prefix: str, parts: list[str], suffix: Optional[str] = None) -> str:
    """Build an order-independent key from a list of strings."""
    return f"{prefix}:{'|'.join(sorted(parts))}:{suffix or ''}"
