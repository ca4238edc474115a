import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from .stats import CacheStats


class LRUCache:
    """Thread-safe LRU cache with TTL support.

    Expired entries are dropped lazily by the lookup that finds them.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Default TTL in seconds
            clock: Source of the current time in seconds
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self.cache: OrderedDict = OrderedDict()
        self.expiry: Dict[str, float] = {}
        self.stats = CacheStats()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        with self._lock:
            if key not in self.cache:
                self.stats.misses += 1
                return None

            if key in self.expiry and self._clock() >= self.expiry[key]:
                self.cache.pop(key)
                self.expiry.pop(key)
                self.stats.misses += 1
                self.stats.expirations += 1
                return None

            # Move to end (most recently used)
            self.cache.move_to_end(key)
            self.stats.hits += 1
            return self.cache[key]

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Set value in cache, replacing any previous entry wholesale."""
        ttl = ttl or self.default_ttl
        with self._lock:
            self.cache.pop(key, None)
            self.cache[key] = value
            self.expiry[key] = self._clock() + ttl
            self.stats.writes += 1

            # Evict oldest if over capacity
            while len(self.cache) > self.max_size:
                oldest_key, _ = self.cache.popitem(last=False)
                self.expiry.pop(oldest_key, None)
                self.stats.evictions += 1

    def clear(self):
        """Clear all cache entries."""
        with self._lock:
            self.cache.clear()
            self.expiry.clear()

    def size(self) -> int:
        """Get current cache size (expired entries included until looked up)."""
        with self._lock:
            return len(self.cache)
