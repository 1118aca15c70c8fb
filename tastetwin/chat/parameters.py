from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from ..persona.store import ProfileStore
from ..qloo.config import DEFAULT_QLOO_CONFIG, QlooConfig
from ..qloo.location import ExtractedLocation, build_location_filter, extract_location
from ..qloo.parser import detail_level_for_query
from ..recommendations.models import (
    EntityCategory,
    LocationFilter,
    RecommendationParameters,
    TargetAPI,
)
from .keywords import contains_any, contains_keyword, matching_keywords

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Category table
# ---------------------------------------------------------------------------

MOVIE_GENRES = (
    "action", "comedy", "drama", "horror", "romance", "thriller",
    "sci-fi", "fantasy", "documentary", "animation",
)
MUSIC_GENRES = ("rock", "pop", "jazz", "classical", "hip-hop", "country", "electronic", "blues")
BOOK_GENRES = ("fiction", "non-fiction", "mystery", "romance", "fantasy", "sci-fi", "biography", "history")
CUISINES = ("italian", "chinese", "japanese", "mexican", "indian", "french", "thai", "mediterranean")
BRAND_DOMAINS = (
    # fashion and footwear
    "fashion", "clothing", "apparel", "wear", "dress", "outfit", "style",
    "shoe", "footwear", "boot", "sneaker", "heel", "sandal", "loafer",
    "running", "casual", "formal",
    # sports and fitness
    "sport", "fitness", "athletic", "gym", "workout", "exercise", "training",
    "football", "basketball", "soccer", "tennis", "golf", "swimming", "cycling",
    "jogging", "weightlifting", "yoga", "pilates", "crossfit",
    # tech
    "tech", "technology", "digital", "software", "app", "platform", "streaming", "media",
    # food
    "food", "restaurant", "dining", "cuisine", "kitchen", "cooking",
    # beauty
    "beauty", "cosmetic", "makeup", "skincare",
    # automotive
    "automotive", "car", "vehicle", "auto", "motor",
    # luxury
    "luxury", "premium", "high-end", "designer",
    # home
    "home", "furniture", "decor", "lifestyle", "household",
)

SPORT_CLUSTER = frozenset({"sport", "sports", "athletic", "fitness"})
SPORT_CANONICAL_TAGS = ["sports", "athletic", "fitness"]


@dataclass(frozen=True)
class CategoryRule:
    category: EntityCategory
    keywords: tuple[str, ...]
    vocabulary: tuple[str, ...] = ()


# First matching row wins.
CATEGORY_RULES: list[CategoryRule] = [
    CategoryRule(EntityCategory.movie, ("movie", "film", "cinema"), MOVIE_GENRES),
    CategoryRule(EntityCategory.brand, ("brand", "company", "product"), BRAND_DOMAINS),
    CategoryRule(EntityCategory.artist, ("artist", "musician", "band", "singer"), MUSIC_GENRES),
    CategoryRule(EntityCategory.book, ("book", "novel", "literature"), BOOK_GENRES),
    CategoryRule(EntityCategory.place, ("restaurant", "cafe", "food", "pizza", "dining", "bar"), CUISINES),
    CategoryRule(EntityCategory.destination, ("destination", "travel", "city", "country")),
    CategoryRule(EntityCategory.person, ("person", "celebrity", "actor")),
    CategoryRule(EntityCategory.podcast, ("podcast",)),
    CategoryRule(EntityCategory.tv_show, ("tv", "show", "series")),
    CategoryRule(EntityCategory.videogame, ("video game", "game", "gaming")),
]

# ---------------------------------------------------------------------------
# Target API table
# ---------------------------------------------------------------------------

_TAG_WORDS = ["tag", "category", "categories", "genre"]
_RECOMMEND_WORDS = ["like", "similar", "recommend", "suggestion", "suggest", "preference"]
_SEARCH_WORDS = ["find", "search", "look for"]
_FIND_RECOMMEND_NOUNS = ["movie", "restaurant", "brand"]

_LIKE_RE = re.compile(r"\blike\s+([^,]+)", re.IGNORECASE)


def match_category(text: str) -> CategoryRule | None:
    for rule in CATEGORY_RULES:
        if contains_any(text, rule.keywords):
            return rule
    return None


def extract_filter_tags(text: str, rule: CategoryRule | None) -> list[str]:
    if rule is None or not rule.vocabulary:
        return []
    found = matching_keywords(text, rule.vocabulary)
    if rule.category is EntityCategory.brand and contains_keyword(text, "brand"):
        if SPORT_CLUSTER.intersection(found):
            return list(SPORT_CANONICAL_TAGS)
    return list(dict.fromkeys(found))


def choose_target_api(text: str) -> TargetAPI:
    if contains_any(text, _TAG_WORDS):
        return TargetAPI.tags
    if contains_any(text, _RECOMMEND_WORDS):
        return TargetAPI.recommend
    if contains_keyword(text, "find") and contains_any(text, _FIND_RECOMMEND_NOUNS):
        return TargetAPI.recommend
    if contains_any(text, _SEARCH_WORDS):
        return TargetAPI.search
    return TargetAPI.recommend


def extract_query_term(text: str) -> str:
    """The text itself, or ``Y`` when it reads "X like Y"."""
    match = _LIKE_RE.search(text)
    if match:
        term = match.group(1).strip().rstrip(".!?").strip()
        if term:
            return term
    return text.strip()


def synthesize(
    text: str,
    location: ExtractedLocation | None = None,
    config: QlooConfig = DEFAULT_QLOO_CONFIG,
) -> RecommendationParameters:
    """Derive request parameters from free text. Pure."""
    if location is None:
        location = extract_location(text, config)
    rule = match_category(text)
    category = rule.category if rule else EntityCategory(config.default_category)

    return RecommendationParameters(
        query_text=extract_query_term(text),
        category=category,
        location=build_location_filter(location),
        filter_tags=extract_filter_tags(text, rule),
        take=config.default_take,
        detail_level=detail_level_for_query(text),
        explainability=True,
        target_api=choose_target_api(text),
    )


def inject_profile_location(
    params: RecommendationParameters,
    stored_location: str | None,
) -> RecommendationParameters:
    """Fill in the profile's location when the text named none."""
    if params.location is not None or not stored_location:
        return params
    return params.evolve(location=LocationFilter(city=stored_location, localities=[stored_location]))


# ---------------------------------------------------------------------------
# Persona location side effect
# ---------------------------------------------------------------------------


async def _update_persona_location(store: ProfileStore, profile_id: str, city: str) -> None:
    try:
        await store.set_location(profile_id, city)
        logger.info("Updated persona location to %s", city)
    except Exception:
        logger.warning("Failed to update persona location", exc_info=True)


def schedule_location_update(
    store: ProfileStore,
    profile_id: str,
    city: str,
    tasks: set[asyncio.Task],
) -> asyncio.Task:
    """Fire-and-forget persona location update; ``tasks`` keeps it referenced."""
    task = asyncio.create_task(_update_persona_location(store, profile_id, city))
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return task
