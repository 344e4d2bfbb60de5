# hltv_tracker/document_cache.py

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    document: Any
    fetched_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl: float = None) -> bool:
        return self.age(now) < (self.ttl if ttl is None else ttl)


class DocumentCache:
    """
    Keeps fetched documents for a per-category time-to-live.

    A fresh entry is served without fetching. An expired entry is never
    served: the fetch function is called instead, and a failed fetch is
    returned as None.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def get(self, key: str, ttl: float) -> Optional[Any]:
        """Return the cached document if still fresh under ``ttl``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry and entry.is_fresh(self._clock(), ttl):
                return entry.document
        return None

    def get_or_fetch(self, key: str, ttl: float, fetch_fn: Callable[[], Optional[Any]]) -> Optional[Any]:
        document = self.get(key, ttl)
        if document is not None:
            self.hits += 1
            logger.info(f"Using cached document for {key}")
            return document

        self.misses += 1
        document = fetch_fn()
        if document is None:
            logger.warning(f"Fetch failed for {key}, nothing cached")
            return None

        with self._lock:
            self._entries[key] = CacheEntry(document, self._clock(), ttl)
        return document

    def invalidate(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Evict every entry older than the TTL it was stored with."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in expired:
                del self._entries[key]
            size = len(self._entries)
        logger.info(f"Cache swept: {len(expired)} evicted, {size} remaining")
        return len(expired)
