from __future__ import annotations

import re
from typing import Any

from ..persona.store import ProfileStore
from ..recommendations.models import Interest
from .keywords import contains_any

_TOPIC_RE = re.compile(r"\babout\s+(?:the\s+)?(?P<topic>[^?.!]+)", re.IGNORECASE)
_PREFERENCE_WORDS = ["my preferences", "what did i", "did i tell", "what do i like"]
_RECENT_LIMIT = 5


def _topic(text: str) -> str | None:
    match = _TOPIC_RE.search(text)
    return match.group("topic").strip().lower() if match else None


def _entity_matches(entity: dict[str, Any], topic: str) -> bool:
    return (
        topic in entity["name"].lower()
        or entity["name"].lower() in topic
        or topic in (entity.get("query") or "").lower()
    )


def _describe_entity(entity: dict[str, Any]) -> str:
    line = f"{entity['name']}"
    if entity.get("description"):
        line += f": {entity['description']}"
    return line


def _interest_list(interests: list[Interest]) -> str:
    return ", ".join(i.name for i in sorted(interests, key=lambda i: -i.confidence))


async def answer_history(text: str, profile_id: str, store: ProfileStore) -> str:
    """Answer a question about earlier conversation from the stored profile."""
    entities = await store.get_recorded_entities(profile_id)
    interests = await store.get_interests(profile_id)
    if not entities and not interests:
        return "We haven't talked about any of your tastes or recommendations yet. Ask me for something!"

    topic = _topic(text)
    if topic:
        hits = [e for e in entities if _entity_matches(e, topic)]
        liked = [i for i in interests if topic in i.name.lower() or i.name.lower() in topic]
        if hits or liked:
            parts: list[str] = []
            if liked:
                parts.append(f"You told me you like {_interest_list(liked)}.")
            if hits:
                latest = hits[-1]
                parts.append(
                    f'When you asked "{latest["query"]}", I suggested {_describe_entity(latest)}.'
                )
            return " ".join(parts)
        return f"I don't remember us talking about {topic}."

    if contains_any(text, _PREFERENCE_WORDS) and interests:
        return f"Here's what I know you like: {_interest_list(interests)}."

    parts = []
    if entities:
        recent = entities[-_RECENT_LIMIT:]
        parts.append("Recently I suggested " + ", ".join(e["name"] for e in recent) + ".")
    if interests:
        parts.append(f"Your interests so far: {_interest_list(interests)}.")
    return " ".join(parts)
