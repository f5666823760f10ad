"""LRU cache of compiled queries keyed by their raw text."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from .nodes import Query

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    size: int
    max_size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class QueryCache:
    """Thread-safe; a max_size of 0 disables caching."""

    def __init__(self, max_size: int = 128) -> None:
        self.max_size = max(0, max_size)
        self._entries: OrderedDict[str, Query] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, text: str) -> Query | None:
        with self._lock:
            query = self._entries.get(text)
            if query is None:
                self._misses += 1
                return None
            self._entries.move_to_end(text)
            self._hits += 1
            return query

    def put(self, text: str, query: Query) -> None:
        if self.max_size == 0:
            return
        with self._lock:
            self._entries[text] = query
            self._entries.move_to_end(text)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted cached query %r", evicted[:60])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: object) -> bool:
        return text in self._entries

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
                max_size=self.max_size,
            )
