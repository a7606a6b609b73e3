"""
Time-bounded, size-bounded memoization of text -> embedding lookups.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

import numpy as np


class EmbeddingCache:
    """Thread-safe LRU cache keyed by content hash, with a per-entry TTL.

    Expired entries count as misses and are dropped on lookup; purge_expired()
    sweeps the rest. Inserting beyond max_entries evicts the least recently
    used entry.
    """

    def __init__(self, ttl_seconds: float = 1800.0, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0: {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1: {max_entries}")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[np.ndarray, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def content_key(text: str) -> str:
        """Content hash used as the cache key."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, text: str) -> Optional[np.ndarray]:
        """Return a copy of the cached vector, or None on miss/expiry."""
        key = self.content_key(text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            vector, cached_at = entry
            if self._clock() - cached_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return vector.copy()

    def put(self, text: str, vector: np.ndarray) -> None:
        """Cache a freshly computed vector, replacing any previous entry."""
        key = self.content_key(text)
        stored = np.array(vector, dtype=np.float32, copy=True)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = (stored, self._clock())

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, cached_at) in self._entries.items() if now - cached_at >= self.ttl_seconds]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, float]:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }
