from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..qloo.config import DEFAULT_QLOO_CONFIG


class EntityCategory(str, Enum):
    place = "urn:entity:place"
    brand = "urn:entity:brand"
    artist = "urn:entity:artist"
    movie = "urn:entity:movie"
    book = "urn:entity:book"
    videogame = "urn:entity:videogame"
    podcast = "urn:entity:podcast"
    tv_show = "urn:entity:tv_show"
    destination = "urn:entity:destination"
    person = "urn:entity:person"

    @property
    def segment(self) -> str:
        return self.value.split(":")[2]

    @classmethod
    def parse(cls, value: Any) -> EntityCategory | None:
        """Return the category for a well-formed URN, or ``None``."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class TargetAPI(str, Enum):
    recommend = "insights"
    search = "search"
    tags = "tags"


class DetailLevel(str, Enum):
    full = "full"
    summary = "summary"
    tiny = "tiny"
    minimal = "minimal"

    @property
    def rank(self) -> int:
        return _DETAIL_ORDER.index(self)

    def at_most(self, other: DetailLevel) -> DetailLevel:
        """Return whichever of the two levels carries less detail."""
        return self if self.rank >= other.rank else other


_DETAIL_ORDER = [DetailLevel.full, DetailLevel.summary, DetailLevel.tiny, DetailLevel.minimal]


class InterestSource(str, Enum):
    explicit = "explicit"
    inferred = "inferred"
    interaction = "interaction"


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# ---------------------------------------------------------------------------
# Persona
# ---------------------------------------------------------------------------


class Interest(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = Field(..., min_length=1)
    category: str = "general"
    confidence: float = 0.7
    resolved_signal_id: str | None = None
    source: InterestSource = InterestSource.inferred
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return _clamp_confidence(value)


class SignalSet(BaseModel):
    entity_ids: list[str] = Field(default_factory=list)
    tag_ids: list[str] = Field(default_factory=list)
    audience_ids: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.entity_ids or self.tag_ids or self.audience_ids)


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------


class LocationFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str
    localities: list[str] = Field(default_factory=list)
    radius: int = DEFAULT_QLOO_CONFIG.default_radius

    def query_string(self) -> str:
        if len(self.localities) > 1:
            return ",".join(self.localities)
        return self.city


class RecommendationParameters(BaseModel):
    """Value object describing one outbound request.

    Instances are frozen; every stage builds a modified copy through
    :meth:`evolve` so earlier stages keep their original.
    """

    model_config = ConfigDict(frozen=True)

    query_text: str
    category: EntityCategory = EntityCategory(DEFAULT_QLOO_CONFIG.default_category)
    location: LocationFilter | None = None
    filter_tags: list[str] = Field(default_factory=list)
    signals: SignalSet = Field(default_factory=SignalSet)
    take: int = DEFAULT_QLOO_CONFIG.default_take
    detail_level: DetailLevel = DetailLevel.summary
    explainability: bool = True
    target_api: TargetAPI = TargetAPI.recommend

    @field_validator("take", mode="before")
    @classmethod
    def _clamp_take(cls, value: int | None) -> int:
        if value is None:
            value = DEFAULT_QLOO_CONFIG.default_take
        return max(DEFAULT_QLOO_CONFIG.min_take, min(DEFAULT_QLOO_CONFIG.max_take, int(value)))

    def evolve(self, **changes: Any) -> RecommendationParameters:
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return RecommendationParameters.model_validate(data)


# ---------------------------------------------------------------------------
# Parsed output
# ---------------------------------------------------------------------------


class NormalizedEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: EntityCategory
    category_inferred: bool = False
    description: str | None = None
    score: float | None = None
    tags: list[str] = Field(default_factory=list)
    image_url: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class ParseMetadata(BaseModel):
    detail_level: DetailLevel
    requested_detail_level: DetailLevel
    original_count: int = 0
    parsed_count: int = 0
    payload_bytes: int = 0
    note: str | None = None


class ParsedResponse(BaseModel):
    entities: list[NormalizedEntity] = Field(default_factory=list)
    metadata: ParseMetadata

    def is_empty(self) -> bool:
        return not self.entities
