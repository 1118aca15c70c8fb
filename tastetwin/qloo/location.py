from __future__ import annotations

import re

from pydantic import BaseModel, Field

from ..chat.keywords import contains_any
from ..recommendations.models import LocationFilter
from .config import DEFAULT_QLOO_CONFIG, QlooConfig

# Colloquial names and abbreviations -> the name the service geocodes best.
LOCATION_ALIASES: dict[str, str] = {
    # US
    "the big apple": "New York City",
    "nyc": "New York City",
    "new york": "New York City",
    "la": "Los Angeles",
    "los angeles": "Los Angeles",
    "sf": "San Francisco",
    "san francisco": "San Francisco",
    "chicago": "Chicago",
    "miami": "Miami",
    "las vegas": "Las Vegas",
    "boston": "Boston",
    "seattle": "Seattle",
    "portland": "Portland",
    "austin": "Austin",
    "nashville": "Nashville",
    # Europe
    "paris": "Paris",
    "london": "London",
    "rome": "Rome",
    "madrid": "Madrid",
    "barcelona": "Barcelona",
    "amsterdam": "Amsterdam",
    "berlin": "Berlin",
    "munich": "Munich",
    "vienna": "Vienna",
    "prague": "Prague",
    "budapest": "Budapest",
    "krakow": "Krakow",
    "cracow": "Krakow",
    "milan": "Milan",
    "florence": "Florence",
    "venice": "Venice",
    "athens": "Athens",
    "dublin": "Dublin",
    "edinburgh": "Edinburgh",
    # Asia
    "tokyo": "Tokyo",
    "osaka": "Osaka",
    "kyoto": "Kyoto",
    "seoul": "Seoul",
    "beijing": "Beijing",
    "shanghai": "Shanghai",
    "hong kong": "Hong Kong",
    "singapore": "Singapore",
    "bangkok": "Bangkok",
    "manila": "Manila",
    "jakarta": "Jakarta",
    "kuala lumpur": "Kuala Lumpur",
    "mumbai": "Mumbai",
    "delhi": "Delhi",
    "bangalore": "Bangalore",
    # Elsewhere
    "sydney": "Sydney",
    "melbourne": "Melbourne",
    "toronto": "Toronto",
    "vancouver": "Vancouver",
    "montreal": "Montreal",
    "mexico city": "Mexico City",
    "sao paulo": "São Paulo",
    "rio de janeiro": "Rio de Janeiro",
    "buenos aires": "Buenos Aires",
    "santiago": "Santiago",
    "lima": "Lima",
    "bogota": "Bogotá",
    "cairo": "Cairo",
    "nairobi": "Nairobi",
    "lagos": "Lagos",
    "johannesburg": "Johannesburg",
    "cape town": "Cape Town",
}

_ALIAS_PATTERNS = [
    (alias, canonical, re.compile(rf"\b{re.escape(alias)}\b"))
    for alias, canonical in sorted(LOCATION_ALIASES.items(), key=lambda kv: -len(kv[0]))
]

_PLACE_RUN = r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"

# Prepositions are case-insensitive; the place itself must be capitalized.
LOCATION_PATTERNS = [
    re.compile(rf"\b(?i:in|at|near|around)\s+{_PLACE_RUN}"),
    re.compile(rf"{_PLACE_RUN}\s+(?i:restaurants?|places?|spots?|venues?)\b"),
    re.compile(rf"\b(?i:find|search|look\s+for)\s+{_PLACE_RUN}"),
]

_EXTRA_LOCALITY_RE = re.compile(rf"(?:,|\band\b|\bor\b)\s*{_PLACE_RUN}")
_CAPITALIZED_RUN_RE = re.compile(rf"\b{_PLACE_RUN}")

NON_LOCATION_WORDS = {
    "find", "search", "look", "for", "restaurants", "restaurant", "places", "place",
    "food", "pizza", "coffee", "bars", "bar", "cafe", "cafes",
    "i", "i'm", "im", "me", "my", "we", "the", "a", "an", "any", "some",
    "show", "give", "get", "tell", "list", "recommend", "suggest", "please",
    "can", "could", "would", "what", "where", "which", "who", "how", "is", "are",
    "best", "top", "good", "great", "new", "cheap", "nice", "hello", "hi", "hey", "thanks",
    "italian", "chinese", "japanese", "mexican", "indian", "french", "thai",
    "mediterranean", "korean", "spanish", "greek", "vietnamese", "american",
}

# Alias and pattern hits only; a bare capitalized run is too weak to filter on.
MIN_FILTER_CONFIDENCE = 0.8

_STRICT_WORDS = ["strict", "strictly", "exact", "exactly", "only"]
_WIDE_WORDS = ["nearby", "around", "surrounding"]


class ExtractedLocation(BaseModel):
    primary_location: str | None = None
    localities: list[str] = Field(default_factory=list)
    radius: int = DEFAULT_QLOO_CONFIG.default_radius
    confidence: float = 0.0
    reasoning: str = "No location detected"

    @property
    def found(self) -> bool:
        return bool(self.primary_location)

    @property
    def confident(self) -> bool:
        return self.found and self.confidence >= MIN_FILTER_CONFIDENCE


def _strip_stopwords(run: str) -> str:
    words = run.split()
    while words and words[0].lower() in NON_LOCATION_WORDS:
        words.pop(0)
    while words and words[-1].lower() in NON_LOCATION_WORDS:
        words.pop()
    return " ".join(words)


def _candidate(run: str | None) -> str | None:
    if not run:
        return None
    cleaned = _strip_stopwords(run.strip())
    return cleaned if len(cleaned) > 2 else None


def _match_alias(text: str) -> tuple[str, str, int] | None:
    lowered = text.lower()
    for alias, canonical, pattern in _ALIAS_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return alias, canonical, match.end()
    return None


def _match_pattern(text: str) -> tuple[str, int] | None:
    for pattern in LOCATION_PATTERNS:
        for match in pattern.finditer(text):
            location = _candidate(match.group(1))
            if location:
                return location, match.end()
    return None


def _match_fallback(text: str) -> tuple[str, int] | None:
    for match in _CAPITALIZED_RUN_RE.finditer(text):
        location = _candidate(match.group(1))
        if location:
            return location, match.end()
    return None


def _extra_localities(text: str, start: int, primary: str) -> list[str]:
    extras: list[str] = []
    for match in _EXTRA_LOCALITY_RE.finditer(text, start):
        run = _candidate(match.group(1))
        if not run:
            continue
        name = _match_alias(run)
        name = name[1] if name else run
        if name != primary and name not in extras:
            extras.append(name)
    return extras


def extract_location(text: str, config: QlooConfig = DEFAULT_QLOO_CONFIG) -> ExtractedLocation:
    """Detect a city or region mentioned in ``text``.

    Tries the alias table, then "in/at/near/around <Place>" style patterns,
    then any capitalized run that is not a generic noun. Never raises; an
    empty result carries ``reasoning="No location detected"``.
    """
    if not text or not text.strip():
        return ExtractedLocation(radius=config.default_radius)

    primary: str | None = None
    end = 0
    confidence = 0.0
    reasoning = ""

    alias_hit = _match_alias(text)
    if alias_hit:
        alias, primary, end = alias_hit
        confidence = 0.9
        reasoning = f'Matched location alias: "{alias}" -> "{primary}"'
    else:
        pattern_hit = _match_pattern(text)
        if pattern_hit:
            primary, end = pattern_hit
            confidence = 0.8
            reasoning = f'Found location mention: "{primary}"'
        else:
            fallback_hit = _match_fallback(text)
            if fallback_hit:
                primary, end = fallback_hit
                confidence = 0.4
                reasoning = f'Fallback location extraction: "{primary}" (low confidence)'

    radius = config.default_radius
    if contains_any(text, _STRICT_WORDS):
        radius = 0
        reasoning += " (strict boundaries requested)"
    if contains_any(text, _WIDE_WORDS):
        radius = config.wide_radius
        reasoning += " (broader area requested)"

    if not primary:
        return ExtractedLocation(radius=radius)

    localities = [primary]
    for extra in _extra_localities(text, end, primary):
        localities.append(extra)
        reasoning += f' + additional locality: "{extra}"'

    return ExtractedLocation(
        primary_location=primary,
        localities=localities,
        radius=radius,
        confidence=confidence,
        reasoning=reasoning.strip(),
    )


def build_location_filter(location: ExtractedLocation) -> LocationFilter | None:
    if not location.confident:
        return None
    return LocationFilter(
        city=location.primary_location,
        localities=list(location.localities),
        radius=location.radius,
    )


def location_suggestions(partial: str, limit: int = 5) -> list[str]:
    """Canonical city names whose alias or name contains ``partial``."""
    needle = partial.strip().lower()
    if not needle:
        return []
    suggestions: list[str] = []
    for alias, canonical in LOCATION_ALIASES.items():
        if (needle in alias or needle in canonical.lower()) and canonical not in suggestions:
            suggestions.append(canonical)
        if len(suggestions) >= limit:
            break
    return suggestions
