from __future__ import annotations

import time
from collections import defaultdict
from typing import Any

from ..recommendations.cache import TTLCache
from .config import DEFAULT_LLM_CONFIG

_SNAPSHOT_KEY = "usage"


class UsageCounter:
    """Process-wide token usage totals.

    Updates are best effort and ``snapshot`` may lag by up to ``ttl`` seconds.
    """

    def __init__(self, ttl: float = DEFAULT_LLM_CONFIG.usage_ttl, cache: TTLCache | None = None) -> None:
        self._cache = cache if cache is not None else TTLCache(ttl=ttl)
        self._sessions: dict[str, dict[str, int]] = defaultdict(
            lambda: {"prompt_tokens": 0, "completion_tokens": 0, "calls": 0}
        )
        self._updated_at: float | None = None

    def record(self, session_id: str, prompt_tokens: int, completion_tokens: int) -> None:
        totals = self._sessions[session_id or "anonymous"]
        totals["prompt_tokens"] += max(0, int(prompt_tokens or 0))
        totals["completion_tokens"] += max(0, int(completion_tokens or 0))
        totals["calls"] += 1
        self._updated_at = time.time()

    def record_response(self, session_id: str, response: Any) -> None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return
        self.record(
            session_id,
            getattr(usage, "prompt_tokens", 0),
            getattr(usage, "completion_tokens", 0),
        )

    def _compute(self) -> dict[str, Any]:
        prompt = sum(s["prompt_tokens"] for s in self._sessions.values())
        completion = sum(s["completion_tokens"] for s in self._sessions.values())
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
            "calls": sum(s["calls"] for s in self._sessions.values()),
            "sessions": len(self._sessions),
            "updated_at": self._updated_at,
        }

    def snapshot(self) -> dict[str, Any]:
        cached = self._cache.get(_SNAPSHOT_KEY)
        if cached is not None:
            return cached
        snapshot = self._compute()
        self._cache.set(_SNAPSHOT_KEY, snapshot)
        return snapshot

    def session_totals(self, session_id: str) -> dict[str, int]:
        return dict(self._sessions.get(session_id, {"prompt_tokens": 0, "completion_tokens": 0, "calls": 0}))

