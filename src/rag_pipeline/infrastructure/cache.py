"""
Embedding Cache - Bounded in-memory memoization of embedding vectors

Part of the RAG Query Pipeline.

License: MIT
"""

from collections import OrderedDict
from typing import Optional, Dict, Any, List
import logging

from ..utils.helpers import generate_hash
from . import monitoring

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """
    Fixed-capacity embedding cache keyed by a hash of the cleaned text.

    Eviction is oldest-insertion-first. Repeated queries cluster in time, so
    this approximates LRU closely enough without reordering on reads. The
    cache is a pure memoization layer, never a source of truth.
    """

    def __init__(self, capacity: int = 1000, key_prefix: str = "embedding"):
        """
        Initialize the cache.

        Args:
            capacity: Maximum number of cached vectors
            key_prefix: Prefix for generated cache keys
        """
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")

        self.capacity = capacity
        self.key_prefix = key_prefix
        self._entries: "OrderedDict[str, List[float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get_cache_key(self, text: str) -> str:
        """
        Generate a stable cache key for cleaned text.

        Args:
            text: Cleaned (pre-truncation) text

        Returns:
            Cache key string
        """
        return f"{self.key_prefix}:{generate_hash(text)}"

    def get(self, cache_key: str) -> Optional[List[float]]:
        """
        Look up a cached vector.

        Args:
            cache_key: Key from ``get_cache_key``

        Returns:
            Cached vector or None on a miss
        """
        vector = self._entries.get(cache_key)
        if vector is None:
            self.misses += 1
            monitoring.record_cache_miss()
            return None

        self.hits += 1
        monitoring.record_cache_hit()
        return vector

    def set(self, cache_key: str, vector: List[float]) -> None:
        """
        Store a vector, evicting the oldest entries beyond capacity.

        Args:
            cache_key: Key from ``get_cache_key``
            vector: Embedding vector to memoize
        """
        if cache_key in self._entries:
            self._entries[cache_key] = vector
            return

        self._entries[cache_key] = vector

        while len(self._entries) > self.capacity:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted embedding cache entry {evicted_key}")

    def __contains__(self, cache_key: str) -> bool:
        return cache_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Drop all cached vectors and reset counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        logger.info("Embedding cache cleared")

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "utilization": len(self._entries) / self.capacity,
        }
