from __future__ import annotations

import httpx
import pytest

from tastetwin.analytics.store import EventStore
from tastetwin.errors import UpstreamError, UpstreamTimeout
from tastetwin.qloo.client import (
    QlooClient,
    build_insights_params,
    build_search_params,
)
from tastetwin.qloo.config import QlooConfig
from tastetwin.recommendations.models import (
    EntityCategory,
    LocationFilter,
    RecommendationParameters,
    SignalSet,
)

CONFIG = QlooConfig(api_key="test-key", base_url="https://qloo.test")


def _client(handler, events: EventStore | None = None) -> QlooClient:
    return QlooClient(CONFIG, events=events, transport=httpx.MockTransport(handler))


class TestInsightsParams:
    def test_core_fields(self):
        params = RecommendationParameters(query_text="tapas", category=EntityCategory.place, take=4)
        query = build_insights_params(params, CONFIG)
        assert query["filter.type"] == "urn:entity:place"
        assert query["take"] == "4"
        assert query["reason"] == "tapas"
        assert query["feature.explainability"] == "true"
        assert "filter.location.query" not in query

    def test_location_and_radius(self):
        params = RecommendationParameters(
            query_text="bars",
            location=LocationFilter(city="Brooklyn", localities=["Brooklyn", "Queens"], radius=0),
        )
        query = build_insights_params(params, CONFIG)
        assert query["filter.location.query"] == "Brooklyn,Queens"
        assert query["filter.location.radius"] == "0"

    def test_default_radius_omitted(self):
        params = RecommendationParameters(query_text="bars", location=LocationFilter(city="Rome"))
        assert "filter.location.radius" not in build_insights_params(params, CONFIG)

    def test_invalid_signals_never_sent(self):
        params = RecommendationParameters(
            query_text="x",
            signals=SignalSet(entity_ids=["nike", "urn:entity:brand:nike"], tag_ids=["sports"]),
            filter_tags=["sports"],
        )
        query = build_insights_params(params, CONFIG)
        assert query["signal.interests.entities"] == "urn:entity:brand:nike"
        assert "signal.interests.tags" not in query
        assert query["filter.tags"] == "sports"

    def test_search_take_never_below_minimum(self):
        params = RecommendationParameters(query_text="x", take=2)
        assert build_search_params(params, CONFIG)["take"] == "2"

    def test_take_clamped_to_configured_bounds(self):
        narrow = QlooConfig(api_key="k", base_url="https://qloo.test", min_take=3, max_take=4)
        params = RecommendationParameters(query_text="x", take=9)
        assert build_insights_params(params, narrow)["take"] == "4"
        assert build_search_params(params, narrow)["take"] == "4"
        small = RecommendationParameters(query_text="x", take=2)
        assert build_insights_params(small, narrow)["take"] == "3"


class TestQlooClient:
    @pytest.mark.asyncio
    async def test_sends_api_key_and_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": {"entities": [{"entity_id": "E1", "name": "A"}]}})

        client = _client(handler)
        params = RecommendationParameters(query_text="tapas", location=LocationFilter(city="Madrid"))
        payload = await client.insights(params)
        await client.aclose()

        assert payload["results"]["entities"][0]["entity_id"] == "E1"
        request = seen[0]
        assert request.url.path == "/v2/insights"
        assert request.headers["X-Api-Key"] == "test-key"
        assert request.url.params["filter.location.query"] == "Madrid"

    @pytest.mark.asyncio
    async def test_http_error_raises_upstream_error(self):
        client = _client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(UpstreamError) as info:
            await client.search(RecommendationParameters(query_text="x"))
        await client.aclose()
        assert info.value.status_code == 500
        assert info.value.endpoint == "/search"

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamTimeout):
            await client.search(RecommendationParameters(query_text="x"))
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_upstream_error(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamError):
            await client.tags("jazz")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_every_call_is_audited(self):
        events = EventStore()
        responses = iter([httpx.Response(200, json={"entities": []}), httpx.Response(503)])
        client = _client(lambda request: next(responses), events=events)
        original = RecommendationParameters(query_text="sport brands", category=EntityCategory.brand)
        rewritten = original.evolve(query_text="Nike Adidas")

        await client.search(rewritten, origin=original)
        with pytest.raises(UpstreamError):
            await client.insights(original)
        await client.aclose()

        calls = events.get_events("qloo_call")
        assert len(calls) == 2
        assert calls[0]["ok"] is True
        assert calls[0]["query"]["query"] == "Nike Adidas"
        assert calls[0]["original_params"]["query_text"] == "sport brands"
        assert calls[1]["ok"] is False
        assert calls[1]["status_code"] == 503
        assert calls[1]["latency_ms"] >= 0

    @pytest.mark.asyncio
    async def test_tag_search_params(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": {"tags": []}})

        client = _client(handler)
        await client.tags("jazz", EntityCategory.artist, 5)
        await client.aclose()

        params = seen[0].url.params
        assert seen[0].url.path == "/v2/tags"
        assert params["filter.query"] == "jazz"
        assert params["filter.parents.types"] == "urn:entity:artist"
        assert params["take"] == "5"

    @pytest.mark.asyncio
    async def test_tag_types_are_cached(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"results": {"tags": [{"id": "urn:tag:genre", "name": "Genre"}]}})

        client = _client(handler)
        first = await client.tag_types(EntityCategory.movie)
        second = await client.tag_types(EntityCategory.movie)
        await client.aclose()
        assert first == second
        assert calls == 1
        assert client.cache_stats()["hits"] == 1
        assert client.cache_stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_lookup_entity_returns_raw_entities(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"results": [{"entity_id": "E7", "name": "Nike"}, "junk"]})

        client = _client(handler)
        entities = await client.lookup_entity("Nike", EntityCategory.brand)
        await client.aclose()
        assert entities == [{"entity_id": "E7", "name": "Nike"}]
        assert seen[0].url.params["filter.type"] == "urn:entity:brand"
        assert seen[0].url.params["take"] == "2"
