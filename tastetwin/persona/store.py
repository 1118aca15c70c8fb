from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Any, Protocol

from ..recommendations.models import Interest, NormalizedEntity


class ProfileStore(Protocol):
    """Persistence boundary for interest profiles.

    Implementations serialize their own writes. Deduplication on append is
    the caller's job.
    """

    async def get_interests(self, profile_id: str) -> list[Interest]: ...

    async def add_interest(self, profile_id: str, interest: Interest) -> Interest: ...

    async def set_resolved_signal(self, profile_id: str, interest_id: str, signal_id: str) -> str | None: ...

    async def update_confidence(self, profile_id: str, interest_id: str, confidence: float) -> Interest | None: ...

    async def get_location(self, profile_id: str) -> str | None: ...

    async def set_location(self, profile_id: str, location: str) -> None: ...

    async def record_entities(self, profile_id: str, query: str, entities: list[NormalizedEntity]) -> None: ...

    async def get_recorded_entities(self, profile_id: str) -> list[dict[str, Any]]: ...


class InMemoryProfileStore:
    """Process-local ``ProfileStore`` used by the API and tests."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._interests: dict[str, list[Interest]] = defaultdict(list)
        self._locations: dict[str, str] = {}
        self._entities: dict[str, list[dict[str, Any]]] = defaultdict(list)

    def _find(self, profile_id: str, interest_id: str) -> Interest | None:
        for interest in self._interests.get(profile_id, []):
            if interest.id == interest_id:
                return interest
        return None

    async def get_interests(self, profile_id: str) -> list[Interest]:
        async with self._lock:
            return [i.model_copy(deep=True) for i in self._interests.get(profile_id, [])]

    async def add_interest(self, profile_id: str, interest: Interest) -> Interest:
        async with self._lock:
            stored = interest.model_copy(deep=True)
            self._interests[profile_id].append(stored)
            return stored.model_copy(deep=True)

    async def set_resolved_signal(self, profile_id: str, interest_id: str, signal_id: str) -> str | None:
        """Write ``signal_id`` unless one is already set; return the stored id."""
        async with self._lock:
            interest = self._find(profile_id, interest_id)
            if interest is None:
                return None
            if interest.resolved_signal_id is None:
                interest.resolved_signal_id = signal_id
            return interest.resolved_signal_id

    async def update_confidence(self, profile_id: str, interest_id: str, confidence: float) -> Interest | None:
        async with self._lock:
            interest = self._find(profile_id, interest_id)
            if interest is None:
                return None
            interest.confidence = confidence
            return interest.model_copy(deep=True)

    async def get_location(self, profile_id: str) -> str | None:
        async with self._lock:
            return self._locations.get(profile_id)

    async def set_location(self, profile_id: str, location: str) -> None:
        async with self._lock:
            self._locations[profile_id] = location

    async def record_entities(self, profile_id: str, query: str, entities: list[NormalizedEntity]) -> None:
        async with self._lock:
            now = time.time()
            for entity in entities:
                self._entities[profile_id].append({
                    "id": entity.id,
                    "name": entity.name,
                    "category": entity.category.value,
                    "description": entity.description,
                    "query": query,
                    "timestamp": now,
                })

    async def get_recorded_entities(self, profile_id: str) -> list[dict[str, Any]]:
        async with self._lock:
            return list(self._entities.get(profile_id, []))
