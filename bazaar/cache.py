"""
In-process TTL cache.

Entries remember when they were stored. ``get`` hands back ``MISS`` both for
unknown keys and for entries older than the TTL, and drops the latter.
Invalidation is always an explicit call made by whoever mutated the data.

The cache lives in the process that built it. With several server workers
each keeps its own entries, and a write invalidates only the worker that
handled it, so other workers may serve figures up to one TTL old.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


class _Miss:
    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS = _Miss()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float


class TTLCache:
    """A small thread-safe key/value cache with a fixed time-to-live."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return MISS
            if self._expired(entry):
                del self._entries[key]
                self.stats["misses"] += 1
                return MISS
            self.stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())
            self.stats["sets"] += 1

    def is_expired(self, key: str) -> Optional[bool]:
        """True/False for a stored key, None when nothing is stored under it."""
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else self._expired(entry)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats["invalidations"] += 1
            return removed

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            self.stats["invalidations"] += len(keys)
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
