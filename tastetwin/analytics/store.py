from __future__ import annotations

import time
from typing import Any


class EventStore:
    """Append-only, in-process log of outbound service calls and pipeline events."""

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []

    def record_event(self, event_type: str, data: dict[str, Any]) -> None:
        self._events.append({
            "type": event_type,
            "timestamp": time.time(),
            **data,
        })

    def get_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e["type"] == event_type]

    def clear_events(self) -> None:
        self._events.clear()
