from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from ..analytics.store import EventStore
from ..errors import UpstreamError, UpstreamTimeout
from ..recommendations.cache import TTLCache, make_key
from ..recommendations.models import EntityCategory, RecommendationParameters
from ..recommendations.signals import clean_signals
from .config import DEFAULT_QLOO_CONFIG, QlooConfig
from .parser import extract_raw_entities

logger = logging.getLogger(__name__)

INSIGHTS_PATH = "/v2/insights"
SEARCH_PATH = "/search"
TAGS_PATH = "/v2/tags"
TAG_TYPES_PATH = "/v2/tags/types"


def _take(params: RecommendationParameters, config: QlooConfig) -> str:
    """``params.take`` clamped to this client's configured bounds."""
    return str(max(config.min_take, min(config.max_take, params.take)))


def _location_params(params: RecommendationParameters, config: QlooConfig) -> dict[str, str]:
    if params.location is None:
        return {}
    out = {"filter.location.query": params.location.query_string()}
    if params.location.radius != config.default_radius:
        out["filter.location.radius"] = str(params.location.radius)
    return out


def build_insights_params(
    params: RecommendationParameters,
    config: QlooConfig = DEFAULT_QLOO_CONFIG,
) -> dict[str, str]:
    """GET parameters for the recommendation-with-signals endpoint.

    Signal ids that do not have an accepted shape are dropped here so they
    never leave the process.
    """
    query: dict[str, str] = {
        "filter.type": params.category.value,
        "take": _take(params, config),
    }
    if params.query_text:
        query["reason"] = params.query_text
    if params.explainability:
        query["feature.explainability"] = "true"
    query.update(_location_params(params, config))

    signals = clean_signals(params.signals)
    if signals.entity_ids:
        query["signal.interests.entities"] = ",".join(signals.entity_ids)
    if signals.tag_ids:
        query["signal.interests.tags"] = ",".join(signals.tag_ids)
    if signals.audience_ids:
        query["signal.demographics.audiences"] = ",".join(signals.audience_ids)
    if params.filter_tags:
        query["filter.tags"] = ",".join(params.filter_tags)
    return query


def build_search_params(
    params: RecommendationParameters,
    config: QlooConfig = DEFAULT_QLOO_CONFIG,
) -> dict[str, str]:
    query = {
        "query": params.query_text,
        "take": _take(params, config),
        "filter.type": params.category.value,
    }
    query.update(_location_params(params, config))
    return query


class QlooClient:
    """Async client for the taste-graph recommendation, search and tag endpoints.

    Every call, successful or not, is appended to ``events`` as a
    ``qloo_call`` together with the parameters the caller asked for.
    """

    def __init__(
        self,
        config: QlooConfig = DEFAULT_QLOO_CONFIG,
        *,
        events: EventStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: TTLCache | None = None,
    ) -> None:
        self.config = config
        self.events = events if events is not None else EventStore()
        self._tag_types_cache = cache if cache is not None else TTLCache(ttl=config.tag_types_ttl)
        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout),
            headers={"X-Api-Key": config.api_key, "Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def cache_stats(self) -> dict:
        return self._tag_types_cache.stats()

    async def _get(
        self,
        path: str,
        query: dict[str, str],
        *,
        audit: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        started = time.perf_counter()
        status: int | None = None
        try:
            try:
                response = await self._client.get(
                    path,
                    params=query,
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )
            except httpx.TimeoutException as exc:
                raise UpstreamTimeout(f"{path} timed out", endpoint=path) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"{path} request failed: {exc}", endpoint=path) from exc

            status = response.status_code
            if status >= 400:
                raise UpstreamError(
                    f"{path} returned {status}: {response.text[:200]}",
                    endpoint=path,
                    status_code=status,
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamError(f"{path} returned invalid JSON", endpoint=path, status_code=status) from exc
        except UpstreamError as exc:
            self._record(path, query, audit, started, status, error=exc.message)
            raise
        self._record(path, query, audit, started, status)
        return payload

    def _record(
        self,
        path: str,
        query: dict[str, str],
        audit: dict[str, Any],
        started: float,
        status: int | None,
        error: str | None = None,
    ) -> None:
        latency_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.debug("GET %s -> %s in %.1f ms", path, status, latency_ms)
        self.events.record_event("qloo_call", {
            "endpoint": path,
            "query": dict(query),
            "original_params": audit,
            "status_code": status,
            "ok": error is None,
            "error": error,
            "latency_ms": latency_ms,
        })

    async def insights(
        self,
        params: RecommendationParameters,
        origin: RecommendationParameters | None = None,
    ) -> Any:
        return await self._get(
            INSIGHTS_PATH,
            build_insights_params(params, self.config),
            audit=(origin or params).model_dump(mode="json"),
        )

    async def search(
        self,
        params: RecommendationParameters,
        origin: RecommendationParameters | None = None,
    ) -> Any:
        """Direct entity search. ``origin`` is the request before any rewrite."""
        return await self._get(
            SEARCH_PATH,
            build_search_params(params, self.config),
            audit=(origin or params).model_dump(mode="json"),
        )

    async def tags(
        self,
        query: str,
        category: EntityCategory | None = None,
        take: int | None = None,
    ) -> Any:
        params = {"filter.query": query, "feature.typo_tolerance": "true"}
        if category is not None:
            params["filter.parents.types"] = category.value
        if take:
            params["take"] = str(take)
        return await self._get(TAGS_PATH, params, audit={"query": query, "category": category and category.value})

    async def tag_types(self, category: EntityCategory | None = None) -> Any:
        params: dict[str, str] = {}
        if category is not None:
            params["filter.parents.types"] = category.value
        key = make_key({"path": TAG_TYPES_PATH, **params})
        cached = self._tag_types_cache.get(key)
        if cached is not None:
            return cached
        payload = await self._get(TAG_TYPES_PATH, params, audit=dict(params))
        self._tag_types_cache.set(key, payload)
        return payload

    async def lookup_entity(
        self,
        name: str,
        category: EntityCategory | None = None,
        take: int = 2,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Search for ``name`` and return the raw matching entities."""
        query = {"query": name, "take": str(max(self.config.min_take, take))}
        if category is not None:
            query["filter.type"] = category.value
        payload = await self._get(
            SEARCH_PATH,
            query,
            audit={"lookup": name, "category": category and category.value},
            timeout=timeout,
        )
        _, entities = extract_raw_entities(payload)
        return [e for e in entities if isinstance(e, dict)]
