from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors import ParseError, UpstreamError
from ..qloo.client import QlooClient
from ..qloo.parser import extract_raw_entities
from .models import EntityCategory, RecommendationParameters, SignalSet, TargetAPI
from .signals import clean_signals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryRewrite:
    """Replace the free-text search query for a category/tag combination.

    Free-text category queries ("sport brands") match poorly upstream, so
    the search falls back to enumerating well-known entities instead.
    """

    category: EntityCategory
    trigger_tags: frozenset[str]
    query: str

    def applies_to(self, params: RecommendationParameters) -> bool:
        if params.category is not self.category:
            return False
        return any(tag.lower() in self.trigger_tags for tag in params.filter_tags)


QUERY_REWRITES: list[QueryRewrite] = [
    QueryRewrite(
        category=EntityCategory.brand,
        trigger_tags=frozenset({"sport", "sports", "athletic", "fitness"}),
        query="Nike Adidas Under Armour Puma Reebok sport brands",
    ),
]


def rewrite_for_search(params: RecommendationParameters) -> RecommendationParameters:
    """Return a copy with the search query rewritten, location untouched."""
    for rule in QUERY_REWRITES:
        if rule.applies_to(params):
            return params.evolve(query_text=rule.query)
    return params


def count_entities(payload: Any) -> int:
    try:
        _, entities = extract_raw_entities(payload)
    except ParseError:
        return 0
    return len(entities)


@dataclass
class DispatchResult:
    payload: Any
    endpoint: TargetAPI
    fallback_used: bool = False
    attempted: list[str] = field(default_factory=list)


class RecommendationDispatcher:
    """Turns parameters plus resolved signals into at most two sequential calls.

    The recommendation endpoint is tried first when there is anything to
    bias it with; an error or an empty answer triggers exactly one direct
    entity search. A failure of that second call propagates.
    """

    def __init__(self, client: QlooClient) -> None:
        self.client = client

    async def dispatch(
        self,
        params: RecommendationParameters,
        signals: SignalSet | None = None,
    ) -> DispatchResult:
        if params.target_api is TargetAPI.tags:
            return await self._tag_search(params)
        if params.target_api is TargetAPI.search:
            return await self._entity_search(params, attempted=[], fallback=False)
        return await self._recommend(params, clean_signals(signals or SignalSet()))

    async def _recommend(self, params: RecommendationParameters, signals: SignalSet) -> DispatchResult:
        attempted: list[str] = []

        if signals.entity_ids or signals.tag_ids:
            primary = params.evolve(signals=signals)
            label = (
                f"personalized recommendations from {len(signals.entity_ids)} entity "
                f"and {len(signals.tag_ids)} tag signals"
            )
        elif params.filter_tags:
            primary = params.evolve(signals=SignalSet(tag_ids=list(params.filter_tags)))
            label = f"recommendations filtered by {', '.join(params.filter_tags)}"
        else:
            primary = None
            label = ""

        if primary is None:
            logger.info("No signals or tags, going straight to entity search")
            return await self._entity_search(params, attempted=attempted, fallback=False)

        try:
            payload = await self.client.insights(primary, origin=params)
        except UpstreamError as exc:
            logger.warning("Recommendation call failed, falling back to entity search", exc_info=True)
            attempted.append(f"{label} (failed: {exc.message})")
        else:
            if count_entities(payload) > 0:
                attempted.append(label)
                return DispatchResult(payload=payload, endpoint=TargetAPI.recommend, attempted=attempted)
            logger.info("Recommendation call returned no entities, falling back to entity search")
            attempted.append(f"{label} (no results)")

        return await self._entity_search(params, attempted=attempted, fallback=True)

    async def _entity_search(
        self,
        params: RecommendationParameters,
        *,
        attempted: list[str],
        fallback: bool,
    ) -> DispatchResult:
        search_params = rewrite_for_search(params)
        label = f'entity search for "{search_params.query_text}"'
        try:
            payload = await self.client.search(search_params, origin=params)
        except UpstreamError as exc:
            exc.attempted = attempted + [f"{label} (failed: {exc.message})"]
            raise
        attempted.append(label)
        return DispatchResult(
            payload=payload,
            endpoint=TargetAPI.search,
            fallback_used=fallback,
            attempted=attempted,
        )

    async def _tag_search(self, params: RecommendationParameters) -> DispatchResult:
        label = f'tag search for "{params.query_text}"'
        try:
            payload = await self.client.tags(params.query_text, params.category, params.take)
        except UpstreamError as exc:
            exc.attempted = [f"{label} (failed: {exc.message})"]
            raise
        return DispatchResult(payload=payload, endpoint=TargetAPI.tags, attempted=[label])
