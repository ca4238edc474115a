from .stats import CacheStats
from .lru import LRUCache
from .response_cache import CacheEntry, ResponseCache, normalize_question
