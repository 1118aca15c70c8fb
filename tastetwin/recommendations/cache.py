from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Callable

_DEFAULT_TTL = 300  # 5 minutes


def make_key(request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


class TTLCache:
    """Small expiring key/value cache with hit/miss accounting."""

    def __init__(self, ttl: float = _DEFAULT_TTL, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry and self._clock() - entry["created_at"] < self.ttl:
            self._hits += 1
            return entry["value"]
        if entry:
            del self._entries[key]
        self._misses += 1
        return None

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = {"value": value, "created_at": self._clock()}

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }
