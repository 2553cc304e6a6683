#!/usr/bin/env python3
"""
Bounded cache of match results keyed by the hash of the normalized question.

FIFO eviction once max_size entries are held, entries expire after ttl_ms.
A stored None result means "confirmed no match" and is still a hit.
"""

import time
import logging
import threading
from collections import OrderedDict
from typing import Dict, Optional

from quiz_models import CacheEntry, MatchResult

logger = logging.getLogger('QuizMatch-Cache')


class ResultCache:
    def __init__(self, max_size: int = 200, ttl_ms: int = 300000, clock=time.monotonic):
        self.max_size = max_size
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _is_expired(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.created_at) * 1000.0 > self.ttl_ms

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._is_expired(entry):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def put(self, key: str, result: Optional[MatchResult]) -> CacheEntry:
        entry = CacheEntry(key=key, result=result, created_at=self._clock())
        with self._lock:
            # Re-inserting moves the key to the back of the eviction queue
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug(f"Evicted cache entry {evicted[:12]}")
        return entry

    def invalidate(self, key: str, stale: bool = False):
        """Drop one entry; stale=True turns the lookup that returned it into a miss"""
        with self._lock:
            if self._entries.pop(key, None) is not None and stale:
                self.hits = max(0, self.hits - 1)
                self.misses += 1

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                'size': len(self._entries),
                'max_size': self.max_size,
                'ttl_ms': self.ttl_ms,
                'hits': self.hits,
                'misses': self.misses,
                'evictions': self.evictions,
                'hit_rate': self.hits / lookups if lookups else 0.0,
            }
