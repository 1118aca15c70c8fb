from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any

from ..recommendations.models import Interest, InterestSource
from .resolver import probable_category
from .store import ProfileStore

logger = logging.getLogger(__name__)

FEEDBACK_STEP = 0.1
EXPLICIT_CONFIDENCE = 0.9
MAX_INTEREST_LENGTH = 60

_NAME = r"(?P<name>[^.,!?;]+)"

# (pattern, source, confidence). Patterns run on the original text.
EXTRACTION_PATTERNS: list[tuple[re.Pattern[str], InterestSource, float]] = [
    (
        re.compile(rf"\bmy\s+fav(?:ou?rite)\s+(?P<thing>[a-z ]+?)\s+(?:is|are)\s+{_NAME}", re.IGNORECASE),
        InterestSource.explicit,
        0.9,
    ),
    (re.compile(rf"\bi\s+(?:really\s+)?(?:love|adore)\s+{_NAME}", re.IGNORECASE), InterestSource.explicit, 0.9),
    (
        re.compile(rf"\bi(?:'m|\s+am)\s+(?:really\s+)?(?:into|obsessed\s+with)\s+{_NAME}", re.IGNORECASE),
        InterestSource.explicit,
        0.85,
    ),
    (re.compile(rf"\b(?:a\s+)?(?:big|huge)\s+fan\s+of\s+{_NAME}", re.IGNORECASE), InterestSource.explicit, 0.85),
    (re.compile(rf"\bi\s+(?:really\s+)?(?:like|enjoy)\s+{_NAME}", re.IGNORECASE), InterestSource.inferred, 0.7),
]

_SPLIT_RE = re.compile(r"\s*(?:,|\band\b|\bor\b|&)\s*", re.IGNORECASE)
_TRAILING_RE = re.compile(r"\s+(?:a lot|so much|very much|too|as well)$", re.IGNORECASE)
_IGNORED_NAMES = {"it", "that", "this", "them", "you", "things", "stuff", "something", "everything"}


def normalize_name(name: str) -> str:
    return " ".join(name.split()).lower()


def _clean(fragment: str) -> str | None:
    name = _TRAILING_RE.sub("", fragment.strip())
    name = name.strip(" '\"")
    if not name or len(name) > MAX_INTEREST_LENGTH:
        return None
    lowered = name.lower()
    if lowered in _IGNORED_NAMES or lowered.startswith("to "):
        return None
    return name


def _category_for(name: str, hint: str | None = None) -> str:
    category = (hint and probable_category(hint)) or probable_category(name)
    return category.segment if category else "general"


def extract_interests(text: str) -> list[Interest]:
    """Rule-based interest extraction, deduplicated by case-insensitive name."""
    found: list[Interest] = []
    seen: set[str] = set()
    for pattern, source, confidence in EXTRACTION_PATTERNS:
        for match in pattern.finditer(text):
            hint = match.groupdict().get("thing")
            for fragment in _SPLIT_RE.split(match.group("name")):
                name = _clean(fragment)
                if name is None or normalize_name(name) in seen:
                    continue
                seen.add(normalize_name(name))
                found.append(Interest(
                    name=name,
                    category=_category_for(name, hint),
                    confidence=confidence,
                    source=source,
                    metadata={"extracted_from": text[:200]},
                ))
    return found


class PersonaManager:
    def __init__(self, store: ProfileStore) -> None:
        self.store = store

    async def _find(self, profile_id: str, name: str) -> Interest | None:
        wanted = normalize_name(name)
        for interest in await self.store.get_interests(profile_id):
            if normalize_name(interest.name) == wanted:
                return interest
        return None

    async def add_interest(
        self,
        profile_id: str,
        name: str,
        category: str | None = None,
        confidence: float = EXPLICIT_CONFIDENCE,
        source: InterestSource = InterestSource.explicit,
    ) -> tuple[Interest, bool]:
        """Store an interest unless one with the same name exists.

        Returns ``(interest, created)``.
        """
        existing = await self._find(profile_id, name)
        if existing is not None:
            return existing, False
        interest = Interest(
            name=name.strip(),
            category=category or _category_for(name),
            confidence=confidence,
            source=source,
        )
        return await self.store.add_interest(profile_id, interest), True

    async def learn_from_message(self, profile_id: str, text: str) -> list[Interest]:
        stored: list[Interest] = []
        for candidate in extract_interests(text):
            interest, created = await self.add_interest(
                profile_id,
                candidate.name,
                category=candidate.category,
                confidence=candidate.confidence,
                source=candidate.source,
            )
            if created:
                stored.append(interest)
        if stored:
            logger.info("Learned %d new interests", len(stored))
        return stored

    async def apply_feedback(self, profile_id: str, interest_name: str, is_positive: bool) -> Interest | None:
        interest = await self._find(profile_id, interest_name)
        if interest is None:
            return None
        delta = FEEDBACK_STEP if is_positive else -FEEDBACK_STEP
        # Round away float drift from repeated 0.1 steps.
        confidence = round(max(0.0, min(1.0, interest.confidence + delta)), 4)
        return await self.store.update_confidence(profile_id, interest.id, confidence)

    async def summary(self, profile_id: str) -> dict[str, Any]:
        interests = await self.store.get_interests(profile_id)
        categories = Counter(i.category for i in interests)
        average = sum(i.confidence for i in interests) / len(interests) if interests else 0.0
        return {
            "location": await self.store.get_location(profile_id),
            "interests": interests,
            "top_categories": [c for c, _ in categories.most_common(3)],
            "confidence": round(average, 3),
        }
