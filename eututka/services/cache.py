from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models import FetchResult

CacheKey = Tuple[str, str, str]


@dataclass
class CacheEntry:
    key: CacheKey
    payload: FetchResult
    timestamp: float

    def age(self, now: float) -> float:
        return now - self.timestamp


class FetchCache:
    """
    In-memory store of raw provider payloads keyed by (provider, dataset, paramsHash).

    - Per-provider TTL; expired entries are not deleted so a failed refresh
      can still be answered from them
    - A later successful fetch replaces the entry
    - Thread-safe operations
    """

    DEFAULT_TTL = 1800  # 30 minutes

    def __init__(
        self,
        ttl_by_provider: Optional[Mapping[str, int]] = None,
        default_ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl_by_provider = dict(ttl_by_provider or {})
        self._default_ttl = default_ttl
        self._clock = clock
        self.hits = 0
        self.misses = 0
        self.stale_served = 0

    @staticmethod
    def _normalize_params(params: Mapping[str, Any]) -> str:
        """
        Hash parameters in canonical form.

        Keys are sorted so the same parameters always hash the same regardless
        of insertion order.
        """
        json_str = json.dumps(params, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.md5(json_str.encode()).hexdigest()

    @classmethod
    def make_key(cls, provider: str, dataset: str, params: Optional[Mapping[str, Any]] = None) -> CacheKey:
        return (provider, dataset, cls._normalize_params(params or {}))

    def ttl_for(self, provider: str) -> int:
        return self._ttl_by_provider.get(provider, self._default_ttl)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return entry.age(self._clock()) < self.ttl_for(entry.key[0])

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return a fresh entry, or None on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry):
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def put(self, key: CacheKey, payload: FetchResult) -> CacheEntry:
        entry = CacheEntry(key=key, payload=payload, timestamp=self._clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def get_stale(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry for key whether or not it has expired."""
        with self._lock:
            return self._entries.get(key)

    def record_stale_served(self) -> None:
        with self._lock:
            self.stale_served += 1

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.stale_served = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, int | float]:
        with self._lock:
            total_requests = self.hits + self.misses
            hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0
            now = self._clock()
            expired = sum(
                1 for entry in self._entries.values()
                if entry.age(now) >= self.ttl_for(entry.key[0])
            )
            return {
                "keys": len(self._entries),
                "expired": expired,
                "hits": self.hits,
                "misses": self.misses,
                "stale_served": self.stale_served,
                "hit_rate": round(hit_rate, 2),
            }
