"""
Normalization of taste-graph payloads.

The service nests its entity array differently per endpoint and per
request shape, and a single response can run to hundreds of kilobytes.
``parse`` turns any known envelope into a bounded list of
``NormalizedEntity`` objects whose verbosity depends on both the caller's
requested detail level and the size of the payload.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..chat.keywords import contains_any
from ..errors import ParseError
from ..recommendations.models import (
    DetailLevel,
    EntityCategory,
    NormalizedEntity,
    ParsedResponse,
    ParseMetadata,
)
from .config import DEFAULT_QLOO_CONFIG

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Size policy
# ---------------------------------------------------------------------------

TINY_THRESHOLD_BYTES = 20_000
MINIMAL_THRESHOLD_BYTES = 50_000

# (minimum payload size, max entities), largest first.
ENTITY_CAPS: list[tuple[int, int]] = [
    (200_000, 3),
    (100_000, 5),
    (50_000, 8),
    (0, 10),
]

DESCRIPTION_LIMITS: dict[DetailLevel, int | None] = {
    DetailLevel.full: None,
    DetailLevel.summary: 200,
    DetailLevel.tiny: 100,
    DetailLevel.minimal: 50,
}

TAG_LIMITS: dict[DetailLevel, int] = {
    DetailLevel.full: 5,
    DetailLevel.summary: 3,
    DetailLevel.tiny: 0,
    DetailLevel.minimal: 0,
}

_SUMMARY_PROPERTIES = ("address", "rating", "price_range", "cuisine", "genre", "release_year", "website")
_ELLIPSIS = "..."


def payload_size(payload: Any) -> int:
    """Size in bytes of the compact UTF-8 JSON serialization of ``payload``."""
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
    return len(text.encode("utf-8"))


def effective_detail_level(requested: DetailLevel, size: int) -> DetailLevel:
    """Downgrade ``requested`` when the payload is large. Never upgrades."""
    if size > MINIMAL_THRESHOLD_BYTES:
        return requested.at_most(DetailLevel.minimal)
    if size > TINY_THRESHOLD_BYTES:
        return requested.at_most(DetailLevel.tiny)
    return requested


def entity_cap(size: int) -> int:
    for minimum, cap in ENTITY_CAPS:
        if size >= minimum:
            return cap
    return ENTITY_CAPS[-1][1]


def truncate(text: str | None, limit: int | None) -> str | None:
    if not text:
        return None
    if limit is None or len(text) <= limit:
        return text
    return text[: limit - len(_ELLIPSIS)].rstrip() + _ELLIPSIS


# ---------------------------------------------------------------------------
# Envelope adapters
# ---------------------------------------------------------------------------


def _data_results_entities(payload: Any) -> list | None:
    match payload:
        case {"data": {"results": {"entities": list() as entities}}}:
            return entities
    return None


def _data_entities(payload: Any) -> list | None:
    match payload:
        case {"data": {"entities": list() as entities}}:
            return entities
    return None


def _data_results_array(payload: Any) -> list | None:
    match payload:
        case {"data": {"results": list() as entities}}:
            return entities
    return None


def _results_entities(payload: Any) -> list | None:
    match payload:
        case {"results": {"entities": list() as entities}}:
            return entities
    return None


def _top_level_entities(payload: Any) -> list | None:
    match payload:
        case {"entities": list() as entities}:
            return entities
    return None


def _results_array(payload: Any) -> list | None:
    match payload:
        case {"results": list() as entities}:
            return entities
    return None


def _results_tags(payload: Any) -> list | None:
    match payload:
        case {"results": {"tags": list() as tags}} | {"data": {"results": {"tags": list() as tags}}}:
            return tags
    return None


def _bare_array(payload: Any) -> list | None:
    match payload:
        case list() as entities:
            return entities
    return None


# Probed in order; the first adapter yielding a non-empty list wins.
ENVELOPE_ADAPTERS: list[tuple[str, Callable[[Any], list | None]]] = [
    ("data.results.entities", _data_results_entities),
    ("data.entities", _data_entities),
    ("data.results[]", _data_results_array),
    ("results.entities", _results_entities),
    ("entities", _top_level_entities),
    ("results[]", _results_array),
    ("results.tags", _results_tags),
    ("[]", _bare_array),
]


def extract_raw_entities(payload: Any) -> tuple[str, list]:
    """Return ``(shape_name, entities)`` for the first matching envelope.

    A recognized envelope with an empty array yields an empty list; a payload
    matching no envelope at all raises ``ParseError``.
    """
    recognized: str | None = None
    for name, adapter in ENVELOPE_ADAPTERS:
        entities = adapter(payload)
        if entities is None:
            continue
        if entities:
            return name, entities
        recognized = recognized or name
    if recognized is not None:
        return recognized, []
    raise ParseError("Unrecognized response shape")


# ---------------------------------------------------------------------------
# Category inference
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InferenceRule:
    category: EntityCategory
    property_keys: tuple[str, ...]
    name_nouns: tuple[str, ...]


# Property rules are tried for every row before any name rule.
INFERENCE_RULES: list[InferenceRule] = [
    InferenceRule(EntityCategory.place, ("cuisine", "address"), ("park", "museum", "store", "cafe", "restaurant")),
    InferenceRule(EntityCategory.movie, ("genre", "director"), ("movie", "film")),
    InferenceRule(EntityCategory.artist, ("artist", "album"), ("artist", "band")),
    InferenceRule(EntityCategory.book, ("author", "book"), ("book",)),
    InferenceRule(EntityCategory.brand, ("brand", "company"), ("brand", "company")),
]


def _has_property(raw: dict, key: str) -> bool:
    props = raw.get("properties")
    if isinstance(props, dict) and props.get(key):
        return True
    return bool(raw.get(key))


def infer_category(raw: dict) -> EntityCategory | None:
    for rule in INFERENCE_RULES:
        if any(_has_property(raw, key) for key in rule.property_keys):
            return rule.category
    name = raw.get("name")
    if isinstance(name, str):
        # Plain substring test: "Booksmart" is a book, "Filmhaus" a movie.
        lowered = name.lower()
        for rule in INFERENCE_RULES:
            if any(noun in lowered for noun in rule.name_nouns):
                return rule.category
    return None


def _declared_category(raw: dict) -> EntityCategory | None:
    for key in ("type", "entity_type", "entityType", "subtype"):
        category = EntityCategory.parse(raw.get(key))
        if category:
            return category
    types = raw.get("types")
    if isinstance(types, list):
        for value in types:
            category = EntityCategory.parse(value)
            if category:
                return category
    return None


# ---------------------------------------------------------------------------
# Entity normalization
# ---------------------------------------------------------------------------

_IMAGE_PATHS: list[tuple[str, ...]] = [
    ("properties", "image", "url"),
    ("properties", "image_url"),
    ("image", "url"),
    ("external", "image_url"),
    ("metadata", "image_url"),
]


def _dig(obj: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _image_url(raw: dict) -> str | None:
    for path in _IMAGE_PATHS:
        value = _dig(raw, path)
        if isinstance(value, str) and value:
            return value
    return None


def _score(raw: dict) -> float | None:
    for value in (_dig(raw, ("query", "affinity")), raw.get("score")):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def _tag_names(raw: dict) -> list[str]:
    names: list[str] = []
    for tag in raw.get("tags") or []:
        if isinstance(tag, dict):
            name = tag.get("name")
        else:
            name = tag
        if isinstance(name, str) and name:
            names.append(name)
    return names


def _description(raw: dict) -> str | None:
    props = raw.get("properties") if isinstance(raw.get("properties"), dict) else {}
    value = props.get("description") or raw.get("description")
    return value if isinstance(value, str) else None


def _properties(raw: dict, level: DetailLevel) -> dict[str, Any]:
    props = raw.get("properties") if isinstance(raw.get("properties"), dict) else {}
    if level is DetailLevel.full:
        return dict(props)
    if level is DetailLevel.summary:
        return {k: props[k] for k in _SUMMARY_PROPERTIES if props.get(k) is not None}
    return {}


def normalize_entity(
    raw: Any,
    level: DetailLevel,
    fallback_category: EntityCategory,
) -> NormalizedEntity:
    if not isinstance(raw, dict):
        raise ParseError(f"Entity is not an object: {type(raw).__name__}")
    entity_id = raw.get("entity_id") or raw.get("id")
    name = raw.get("name")
    if not entity_id or not isinstance(name, str) or not name.strip():
        raise ParseError("Entity is missing an id or a name")

    category = _declared_category(raw)
    inferred = category is None
    if category is None:
        category = infer_category(raw) or fallback_category

    return NormalizedEntity(
        id=str(entity_id),
        name=name.strip(),
        category=category,
        category_inferred=inferred,
        description=truncate(_description(raw), DESCRIPTION_LIMITS[level]),
        score=_score(raw) if level is not DetailLevel.minimal else None,
        tags=_tag_names(raw)[: TAG_LIMITS[level]],
        image_url=_image_url(raw),
        properties=_properties(raw, level),
    )


def parse(
    payload: Any,
    requested_level: DetailLevel = DetailLevel.summary,
    fallback_category: EntityCategory | None = None,
) -> ParsedResponse:
    """Normalize ``payload`` into a bounded ``ParsedResponse``.

    Never raises: unrecognized shapes and empty arrays produce an empty
    response whose metadata explains why.
    """
    fallback = fallback_category or EntityCategory(DEFAULT_QLOO_CONFIG.default_category)
    size = payload_size(payload)
    level = effective_detail_level(requested_level, size)

    metadata = ParseMetadata(
        detail_level=level,
        requested_detail_level=requested_level,
        payload_bytes=size,
    )
    if level is not requested_level:
        metadata.note = f"Detail reduced from {requested_level.value} to {level.value} for a {size} byte payload"

    try:
        shape, raw_entities = extract_raw_entities(payload)
    except ParseError as exc:
        logger.warning("Could not parse recommendation payload: %s", exc.message)
        metadata.note = exc.message
        return ParsedResponse(entities=[], metadata=metadata)

    metadata.original_count = len(raw_entities)
    cap = entity_cap(size)
    entities: list[NormalizedEntity] = []
    for index, raw in enumerate(raw_entities):
        if len(entities) >= cap:
            break
        try:
            entities.append(normalize_entity(raw, level, fallback))
        except (ParseError, ValueError) as exc:
            logger.debug("Skipping entity %d: %s", index, exc)

    metadata.parsed_count = len(entities)
    if not entities and metadata.note is None:
        metadata.note = "The service returned no usable entities"

    logger.info(
        "Parsed %d/%d entities from %s (%d bytes, level=%s)",
        len(entities), len(raw_entities), shape, size, level.value,
    )
    return ParsedResponse(entities=entities, metadata=metadata)


# ---------------------------------------------------------------------------
# Detail level from wording
# ---------------------------------------------------------------------------

_MINIMAL_WORDS = ["just", "only", "list", "names"]
_TINY_WORDS = ["brief", "short", "quick"]
_FULL_WORDS = ["detailed", "full", "complete"]
_MOVIE_WORDS = ["movie", "film", "cinema"]
_BRAND_WORDS = ["brand", "company", "product"]


def detail_level_for_query(text: str) -> DetailLevel:
    """Pick a default detail level from the user's wording."""
    if contains_any(text, _MINIMAL_WORDS):
        return DetailLevel.minimal
    if contains_any(text, _TINY_WORDS):
        return DetailLevel.tiny
    if contains_any(text, _FULL_WORDS):
        return DetailLevel.full
    # Movie and brand responses run large.
    if contains_any(text, _MOVIE_WORDS):
        return DetailLevel.minimal
    if contains_any(text, _BRAND_WORDS):
        return DetailLevel.tiny
    return DetailLevel.summary
