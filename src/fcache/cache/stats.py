"""Thread-safe cache counters."""

import threading
from typing import Optional

from fcache.metadata import CacheStats, StoreStats


class AtomicCounter:
    """Integer counter safe for concurrent increments."""

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def increment(self, delta: int = 1) -> int:
        """Add delta and return the new value."""
        with self._lock:
            self._value += delta
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class CacheCounters:
    """Hit, miss and error counters of one cache instance."""

    def __init__(self):
        self.hits = AtomicCounter()
        self.misses = AtomicCounter()
        self.errors = AtomicCounter()

    def snapshot(self, store_stats: Optional[StoreStats] = None) -> CacheStats:
        """Return the current counter values, optionally with store statistics."""
        store_stats = store_stats or StoreStats()
        return CacheStats(
            keys=store_stats.keys,
            size=store_stats.size,
            hits=self.hits.value,
            misses=self.misses.value,
            errors=self.errors.value,
        )
